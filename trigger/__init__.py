from .gateway import CommandGateway, UserCommand
from .sequencer import (
    EventSequencer,
    GatedSequencer,
    SymmetricSequencer,
    create_sequencer,
    register_sequencer,
)

__all__ = [
    "CommandGateway",
    "UserCommand",
    "EventSequencer",
    "GatedSequencer",
    "SymmetricSequencer",
    "create_sequencer",
    "register_sequencer",
]
