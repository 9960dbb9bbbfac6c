"""Line-oriented text protocol spoken between ledger clients and the server."""

from .commands import Command, CommandType, CommandParser, CommandFormatError
from .responses import Status, ErrorKind, Response, ERROR_STATUS
from .interpreter import CommandInterpreter, ConnectionState

__all__ = [
    'Command',
    'CommandType',
    'CommandParser',
    'CommandFormatError',
    'Status',
    'ErrorKind',
    'Response',
    'ERROR_STATUS',
    'CommandInterpreter',
    'ConnectionState',
]
