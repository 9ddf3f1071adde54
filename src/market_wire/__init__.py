"""Market wire package.

Polls financial news feeds, keeps the items that score high enough against
a weighted keyword taxonomy, tags them with the companies they affect and
posts a short alert for each.  See :mod:`market_wire.runner` for the entry
point.
"""

__version__ = "0.1.0"

__all__: list[str] = []
