import pytest

from assessment.realtime.websockets import attempt_room, register_countdown_events


class RecordingServer:
    def __init__(self):
        self.emitted = []

    async def emit(self, event, data, room=None):
        self.emitted.append((event, data, room))


@pytest.mark.asyncio
async def test_ticks_and_expiry_are_pushed_to_the_attempt_room(countdown, clock):
    server = RecordingServer()
    register_countdown_events(server, countdown)
    countdown.start(1, 60, clock())

    clock.advance(seconds=10)
    await countdown.tick(1)
    assert server.emitted == [("countdown_tick", {"attempt_id": 1, "remaining_seconds": 50}, "attempt:1")]

    clock.advance(seconds=50)
    await countdown.tick(1)
    assert server.emitted[-1] == ("attempt_expired", {"attempt_id": 1}, attempt_room(1))
    assert len(server.emitted) == 2


@pytest.mark.asyncio
async def test_other_attempts_are_not_pushed(countdown, clock):
    server = RecordingServer()
    register_countdown_events(server, countdown)
    countdown.start(1, 60, clock())
    countdown.start(2, 600, clock())

    clock.advance(seconds=30)
    await countdown.tick(2)
    assert server.emitted == [("countdown_tick", {"attempt_id": 2, "remaining_seconds": 570}, "attempt:2")]
