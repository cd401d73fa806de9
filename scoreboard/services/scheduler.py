import time

from scoreboard import socketio
from scoreboard.services.broadcast import MessageType, build_message


def schedule_auto_clear(app, hub, expected_sequence: int, delay: int) -> None:
    """Clear the display after ``delay`` seconds unless something else was shown meanwhile.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops when ``delay`` is 0
    - The clear is skipped if the hub published anything after ``expected_sequence``
    """
    if not delay or delay <= 0:
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    app.logger.info(f"[timer-set] auto-clear seq={expected_sequence} delay={delay}s")

    def _worker(seq: int, wait: int):
        time.sleep(wait)
        with app.app_context():
            if hub.sequence != seq:
                app.logger.info(f"[timer-abort] auto-clear seq={seq} current={hub.sequence}")
                return
            app.logger.info(f"[timer-fire] auto-clear seq={seq}")
            hub.publish(build_message(MessageType.CLEAR_DISPLAY, reveal=hub.reveal_snapshot()))

    if app.config.get('TESTING'):
        _worker(expected_sequence, delay)
    else:
        socketio.start_background_task(_worker, expected_sequence, delay)
