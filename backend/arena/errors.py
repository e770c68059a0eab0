from __future__ import annotations

from typing import Any

from flask import jsonify


class ArenaError(Exception):
    """Domain failure reported synchronously to the caller."""

    kind = 'ERROR'
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return build_error_payload(kind=self.kind, message=self.message)


class NotFound(ArenaError):
    kind = 'NOT_FOUND'
    status_code = 404


class InvalidState(ArenaError):
    kind = 'INVALID_STATE'
    status_code = 409


class Forbidden(ArenaError):
    kind = 'FORBIDDEN'
    status_code = 403


class RoomFull(ArenaError):
    kind = 'FULL'
    status_code = 409


class AlreadyMember(ArenaError):
    kind = 'ALREADY_MEMBER'
    status_code = 409


class DuplicateSubmission(ArenaError):
    kind = 'DUPLICATE_SUBMISSION'
    status_code = 409


class InsufficientData(ArenaError):
    kind = 'INSUFFICIENT_DATA'
    status_code = 422


class InvalidConfig(ArenaError):
    kind = 'INVALID_CONFIG'
    status_code = 400


class RoomCodeExhausted(ArenaError):
    kind = 'ROOM_CODE_EXHAUSTED'
    status_code = 503


class Busy(ArenaError):
    kind = 'BUSY'
    status_code = 503


def build_error_payload(*, kind: str, message: str) -> dict[str, Any]:
    payload = {
        'kind': str(kind).strip() or 'ERROR',
        'message': str(message).strip() or 'Unknown error.',
    }
    # Clients read "error" like the rest of the API responses
    payload['error'] = payload['message']
    return payload


def error_response(exc: ArenaError):
    return jsonify(exc.to_dict()), int(exc.status_code)
