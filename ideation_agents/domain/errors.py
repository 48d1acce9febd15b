class IdeationEngineError(Exception):
    """Base error for the autonomy and memory engine"""


class OracleError(IdeationEngineError):
    """Decision oracle call failed"""


class OracleTimeoutError(OracleError):
    pass


class OracleResponseError(OracleError):
    """Oracle answered with something that could not be parsed"""


class HandlerError(IdeationEngineError):
    """A request or action handler could not complete"""


class UnknownActionError(HandlerError):
    pass
