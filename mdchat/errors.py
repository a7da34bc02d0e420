# mdchat/errors.py


class MdChatError(Exception):
    """
    Base class for everything that can abandon a single request.
    The request loop logs these and moves on to the next input line.
    """
    pass


class ConfigurationError(MdChatError):
    pass


class InvalidRequestError(MdChatError):
    pass


class TranscriptError(MdChatError):
    pass


class EmptyDocumentError(TranscriptError):
    pass


class EmptyTranscriptError(TranscriptError):
    pass


class InvalidFinalTurnError(TranscriptError):
    pass


class MissingCredentialError(MdChatError):
    pass


class RequestTimeoutError(MdChatError):
    pass


class ChunkTimeoutError(MdChatError):
    pass


class UnsupportedMethodError(MdChatError):
    """
    The only fatal error: the process exits with a failure status.
    """
    pass
