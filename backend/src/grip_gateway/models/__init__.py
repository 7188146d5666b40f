from .models import Channel, ConnectionState, Event, HeldConnection, HoldInstruction  # noqa: F401
