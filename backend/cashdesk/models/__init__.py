from .kv import KeyValueEntry
from .audit import DeficitEvent
from .deficits import DeficitDraft, DeficitRecord, PartialPayment

__all__ = [
    'KeyValueEntry', 'DeficitEvent',
    'DeficitDraft', 'DeficitRecord', 'PartialPayment',
]
