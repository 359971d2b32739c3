import enum


class OrderStateCode(enum.IntEnum):
    """
    Codes the order engine relies on.

    The full set of states lives in the order_states table; fulfilment
    states (in production, ready for pickup, delivered...) are data.
    """
    pending_payment = 1
    confirmed = 2
    cancelled = 6


TERMINAL_STATES = {OrderStateCode.cancelled}


class MovementType(str, enum.Enum):
    consume = "CONSUME"
    reversal = "REVERSAL"
