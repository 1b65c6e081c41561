from typing import Dict
from urllib.parse import parse_qs
import logging

import socketio
from fastapi import HTTPException

from assessment.services.countdown import CountdownScheduler
from assessment.services.exam_attempt import AttemptStateMachine
from assessment.utils.clock import utcnow
from assessment.utils.deps import decode_token

logger = logging.getLogger(__name__)

user_sessions: Dict[str, dict] = {}


def attempt_room(attempt_id: int) -> str:
    return f"attempt:{attempt_id}"


def register_countdown_events(sio_server: socketio.AsyncServer, countdown: CountdownScheduler):
    """Push countdown ticks and expiry to clients watching an attempt. Display only."""

    async def emit_tick(attempt_id: int, remaining_seconds: int):
        await sio_server.emit(
            'countdown_tick',
            {'attempt_id': attempt_id, 'remaining_seconds': remaining_seconds},
            room=attempt_room(attempt_id)
        )

    async def emit_expired(attempt_id: int):
        await sio_server.emit('attempt_expired', {'attempt_id': attempt_id}, room=attempt_room(attempt_id))

    countdown.on_tick(emit_tick)
    countdown.on_expire(emit_expired)


def register_websocket_events(sio_server: socketio.AsyncServer, engine: AttemptStateMachine):

    @sio_server.event
    async def connect(sid, environ, auth):
        token = None
        if auth and 'token' in auth:
            token = auth['token']
        elif environ.get('QUERY_STRING'):
            query_params = parse_qs(environ.get('QUERY_STRING', ''))
            token = query_params.get('token', [None])[0]

        if not token:
            logger.warning(f"Connection rejected for {sid}: No token")
            return False

        try:
            user = decode_token(token)
        except HTTPException as e:
            logger.warning(f"Connection rejected for {sid}: {e.detail}")
            return False

        user_sessions[sid] = {'user_id': user.id, 'connected_at': utcnow()}
        await sio_server.save_session(sid, {'user_id': user.id})
        logger.info(f"Client {sid} connected (User: {user.id})")
        await sio_server.emit('connected', {'status': 'success', 'message': 'Connected successfully'}, room=sid)
        return True

    @sio_server.event
    async def disconnect(sid):
        user_sessions.pop(sid, None)
        logger.info(f"Client {sid} disconnected")

    @sio_server.event
    async def watch_attempt(sid, data):
        session = await sio_server.get_session(sid)
        try:
            attempt_id = int(data.get('attempt_id'))
        except (AttributeError, TypeError, ValueError):
            await sio_server.emit('error', {'message': 'attempt_id is required'}, room=sid)
            return

        attempt = await engine.store.get_attempt(attempt_id)
        if not attempt or attempt.student_id != session.get('user_id'):
            await sio_server.emit('error', {'message': 'Exam attempt not found'}, room=sid)
            return

        await sio_server.enter_room(sid, attempt_room(attempt_id))
        remaining = engine.countdown.remaining(attempt_id)
        await sio_server.emit(
            'countdown_tick',
            {'attempt_id': attempt_id, 'remaining_seconds': remaining or 0},
            room=sid
        )

    @sio_server.event
    async def unwatch_attempt(sid, data):
        attempt_id = data.get('attempt_id') if isinstance(data, dict) else None
        if attempt_id is not None:
            await sio_server.leave_room(sid, attempt_room(int(attempt_id)))
