from .store import RevealState, RevealStateRegistry

__all__ = ['RevealState', 'RevealStateRegistry']
