import time
import threading
from typing import Set, Tuple

from arena import socketio
from arena.errors import ArenaError


class RoundTimer:
    """Closes a round at its deadline even if nobody answers.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (game_id, round)
    - The worker only asks the session to expire the round; the session
      re-checks status, round index and elapsed time under the game lock
    """

    def __init__(self, app):
        self.app = app
        self._scheduled: Set[Tuple[str, int]] = set()
        self._guard = threading.Lock()

    def enabled(self) -> bool:
        cfg = self.app.config
        if not cfg.get('ENABLE_ROUND_TIMERS', True):
            return False
        if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
            return False
        return True

    def schedule(self, game_id: str, round_index: int, duration: int) -> None:
        if not self.enabled():
            return
        key = (game_id, round_index)
        with self._guard:
            if key in self._scheduled:
                self.app.logger.info(f"[timer-skip] game={game_id} round={round_index} already scheduled")
                return
            self._scheduled.add(key)

        grace = int(self.app.config.get('ROUND_GRACE_MS', 50)) / 1000.0
        delay = max(0.0, float(duration)) + grace
        self.app.logger.info(f"[timer-set] game={game_id} round={round_index} duration={duration}s")
        socketio.start_background_task(self._worker, game_id, round_index, delay)

    def _worker(self, game_id: str, round_index: int, delay: float) -> None:
        hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0))
        if hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                socketio.sleep(step)
                slept += step
                self.app.logger.info(
                    f"[timer-heartbeat] game={game_id} round={round_index} remaining={max(0.0, delay - slept):.1f}s"
                )
        else:
            socketio.sleep(delay)

        with self._guard:
            self._scheduled.discard((game_id, round_index))

        with self.app.app_context():
            services = self.app.extensions['arena']
            started = time.monotonic()
            try:
                closed = services.games.expire_round(game_id, round_index)
            except ArenaError as exc:
                self.app.logger.warning(f"[timer-abort] game={game_id} round={round_index} kind={exc.kind} error={exc.message}")
                return
            self.app.logger.info(
                f"[timer-fire] game={game_id} round={round_index} closed={closed} "
                f"took_ms={int((time.monotonic() - started) * 1000)}"
            )


class RoomSweeper:
    """Periodically deletes WAITING rooms that outlived their TTL.

    - No-ops in TESTING mode and when ROOM_SWEEP_INTERVAL_SEC is 0
    - At most one sweep loop per app
    """

    def __init__(self, app):
        self.app = app
        self._started = False
        self._guard = threading.Lock()

    def enabled(self) -> bool:
        cfg = self.app.config
        if int(cfg.get('ROOM_SWEEP_INTERVAL_SEC', 60)) <= 0:
            return False
        return not cfg.get('TESTING')

    def start(self) -> bool:
        if not self.enabled():
            return False
        with self._guard:
            if self._started:
                return False
            self._started = True
        interval = int(self.app.config.get('ROOM_SWEEP_INTERVAL_SEC', 60))
        self.app.logger.info(f"[sweep-start] interval={interval}s")
        socketio.start_background_task(self._worker, interval)
        return True

    def sweep(self) -> int:
        with self.app.app_context():
            services = self.app.extensions['arena']
            try:
                purged = services.rooms.purge_expired()
            except ArenaError as exc:
                self.app.logger.warning(f"[sweep-abort] kind={exc.kind} error={exc.message}")
                return 0
        if purged:
            self.app.logger.info(f"[sweep] purged={purged}")
        return purged

    def _worker(self, interval: int) -> None:
        while True:
            socketio.sleep(interval)
            self.sweep()
