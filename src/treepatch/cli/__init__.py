"""treepatch CLI: fetch remote trees and plan minimal tree patches."""

from ._helpers import main  # noqa: F401

# Import command modules to register Click commands with the main group.
from . import _basic  # noqa: F401
