import queue

from flask import Blueprint, Response, current_app, jsonify, stream_with_context
from scoreboard.services.console import get_hub


display = Blueprint('display', __name__)


@display.route('/snapshot', methods=['GET'])
def snapshot():
    return jsonify(get_hub().snapshot())


@display.route('/stream', methods=['GET'])
def stream():
    """Server-sent events: the snapshot first, then every published message."""
    hub = get_hub()
    heartbeat = max(1, int(current_app.config.get('DISPLAY_HEARTBEAT_SEC', 60)))
    sub = hub.connect_queue()
    logger = current_app.logger

    def _events():
        try:
            while not sub.closed:
                try:
                    message = sub.get(timeout=heartbeat)
                except queue.Empty:
                    yield ': heartbeat\n\n'
                    continue
                yield f"data: {hub.encode(message)}\n\n"
        finally:
            hub.disconnect_queue(sub)
            logger.info("[display-stream] closed")

    return Response(
        stream_with_context(_events()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache'},
    )
