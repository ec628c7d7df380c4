class ChatError(Exception):
    """Base class for every failure the chat core reports to its callers.

    `message` is the exact text shown to users and `status_code` is the HTTP
    status the router answers with.
    """

    status_code = 400
    message = "Request failed"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFound(ChatError):
    status_code = 404
    message = "Not found"


class Expired(ChatError):
    status_code = 410
    message = "Expired"


class Forbidden(ChatError):
    status_code = 403
    message = "Forbidden"


class Conflict(ChatError):
    status_code = 409
    message = "Conflict"


class InvalidInput(ChatError):
    status_code = 422
    message = "Invalid input"


class RoomNotFound(NotFound):
    message = "Room not found"


class RoomExpired(Expired):
    message = "Room has expired"


class NotAMember(Forbidden):
    message = "You are not a member of this room"


class CodeExhausted(Conflict):
    message = "Failed to generate unique room code"


class MissingRoomCode(InvalidInput):
    status_code = 400
    message = "Please enter a room code"


class EmptyMessage(InvalidInput):
    message = "Message cannot be empty"
