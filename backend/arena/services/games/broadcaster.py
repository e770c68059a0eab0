"""Outbound notifications for room and game transitions.

The broadcaster only reads the entities it is handed. ``publish`` is the
transport primitive: ``publish(event, payload, to)`` where ``to`` is a topic
(``room:<id>``, ``game:<id>``), a per-user queue (``user:<id>``) or a socket id.
"""
import time
from typing import Any, Callable, Dict, Optional

Publish = Callable[[str, Dict[str, Any], str], None]


def room_topic(room_id) -> str:
    return f"room:{room_id}"


def game_topic(game_id) -> str:
    return f"game:{game_id}"


def user_queue(user_id) -> str:
    return f"user:{user_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class EventBroadcaster:
    def __init__(self, publish: Publish):
        self.publish = publish

    # ---- Room ----
    def room_updated(self, room, kind: str, actor: Optional[str], message: str) -> None:
        self.publish('room_updated', {
            'type': kind,
            'room': room.to_dict(),
            'player': actor,
            'message': message,
            'timestamp': _now_ms(),
        }, room_topic(room.id))

    def room_closed(self, room_id, actor: Optional[str], message: str) -> None:
        self.publish('room_updated', {
            'type': 'ROOM_CLOSED',
            'room': None,
            'room_id': room_id,
            'player': actor,
            'message': message,
            'timestamp': _now_ms(),
        }, room_topic(room_id))

    def chat(self, room_id, sender: str, text: str) -> None:
        self.publish('chat_message', {
            'room_id': room_id,
            'sender': sender,
            'message': text,
            'timestamp': _now_ms(),
        }, room_topic(room_id))

    # ---- Game ----
    def game_started(self, game, challenge) -> None:
        payload = {
            'game_id': game.id,
            'room_id': game.room_id,
            'challenge': challenge.to_dict() if challenge is not None else None,
            'round': self._round_info(game),
            'message': 'Game started! Good luck!',
            'timestamp': _now_ms(),
        }
        # Room members learn the game id here, then subscribe to the game topic
        self.publish('game_started', payload, room_topic(game.room_id))
        self.publish('game_started', payload, game_topic(game.id))

    def round_opened(self, game, challenge) -> None:
        self._game_updated(game, 'ROUND_STARTED', None, f"Round {game.current_round + 1} started", {
            'round': self._round_info(game),
            'challenge': challenge.to_dict() if challenge is not None else None,
        })

    def answer_accepted(self, game, player, answer, answered: int) -> None:
        self.publish('answer_result', {
            'game_id': game.id,
            'is_correct': answer.is_correct,
            'points': answer.points,
            'elapsed_ms': answer.elapsed_ms,
            'total_score': player.score,
            'message': 'Correct!' if answer.is_correct else 'Incorrect!',
            'timestamp': _now_ms(),
        }, user_queue(player.user_id))
        # Everyone else only learns that an answer arrived
        self._game_updated(game, 'ANSWER_SUBMITTED', player.username, f"{player.username} submitted an answer", {
            'answered': answered,
        })

    def round_closed(self, game, game_round, challenge) -> None:
        self._game_updated(game, 'ROUND_ENDED', None, f"Round {game_round.index + 1} ended", {
            'round_index': game_round.index,
            'correct_answer': challenge.correct_answer if challenge is not None else None,
            'explanation': challenge.explanation if challenge is not None else None,
            'scores': [{'user_id': p.user_id, 'username': p.username, 'score': p.score} for p in game.players],
        })

    def game_finished(self, game) -> None:
        self._game_updated(game, 'GAME_ENDED', None, 'Game finished', {
            'results': game.results.to_dict() if game.results else None,
        })

    def game_cancelled(self, game, reason: str) -> None:
        self._game_updated(game, 'GAME_CANCELLED', None, reason, {})

    def player_connection(self, game, player) -> None:
        kind = 'PLAYER_RECONNECTED' if player.is_connected else 'PLAYER_DISCONNECTED'
        verb = 'reconnected' if player.is_connected else 'disconnected'
        self._game_updated(game, kind, player.username, f"{player.username} {verb}", {})

    # ---- Errors ----
    def error(self, recipient: str, kind: str, message: str) -> None:
        self.publish('error', {
            'type': kind,
            'message': message,
            'timestamp': _now_ms(),
        }, recipient)

    def _game_updated(self, game, kind: str, actor: Optional[str], message: str, extra: Dict[str, Any]) -> None:
        payload = {
            'type': kind,
            'game_id': game.id,
            'status': game.status.value,
            'player': actor,
            'message': message,
            'timestamp': _now_ms(),
        }
        payload.update(extra)
        self.publish('game_updated', payload, game_topic(game.id))

    @staticmethod
    def _round_info(game):
        game_round = game.active_round
        if game_round is None:
            return None
        deadline = game_round.deadline()
        return {
            'index': game_round.index,
            'total': len(game.rounds),
            'duration': game_round.duration,
            'started_at': game_round.started_at.isoformat() if game_round.started_at else None,
            'deadline': deadline.isoformat() if deadline else None,
        }
