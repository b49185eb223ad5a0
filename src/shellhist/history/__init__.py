"""
History capability interface.

Any backend a line editor records commands into implements History:
save, load, search, count, update, delete, session allocation and sync.
"""

from shellhist.history.base import History

__all__ = [
    "History",
]
