#
# Copyright (C) 2024 University of Oxford
#
# This file is part of pyacg.
#
# pyacg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# pyacg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with pyacg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Genomic loci.
"""
from __future__ import annotations

import dataclasses

from pyacg import core


@dataclasses.dataclass(frozen=True)
class Locus:
    """
    A named, fixed length stretch of sequence whose sites can be affected
    by conversions.

    :ivar id: The unique identifier of this locus.
    :vartype id: str
    :ivar site_count: The number of sites in the locus. Sites are indexed
        from 0 to ``site_count - 1``.
    :vartype site_count: int
    :ivar circular: If True, the locus is circular and conversion tracts
        may wrap from the last site back to site 0. Defaults to False.
    :vartype circular: bool
    :ivar convertible: If False, conversions may not be placed on this
        locus. Defaults to True.
    :vartype convertible: bool
    """

    id: str  # noqa: A003
    site_count: int
    circular: bool = False
    convertible: bool = True

    def __post_init__(self):
        if not isinstance(self.id, str) or len(self.id) == 0:
            raise ValueError("Locus id must be a non-empty string")
        if any(c in self.id for c in "\"[]"):
            raise ValueError(
                f"Locus id {self.id!r} must not contain quotes or square brackets"
            )
        if not core.isinteger(self.site_count) or self.site_count < 1:
            raise ValueError("Locus site_count must be a positive integer")
        # Normalise numpy and float integer values.
        object.__setattr__(self, "site_count", int(self.site_count))
        if not isinstance(self.circular, bool):
            raise TypeError("circular must be a bool")
        if not isinstance(self.convertible, bool):
            raise TypeError("convertible must be a bool")

    def contains(self, site: int) -> bool:
        return 0 <= site < self.site_count

    def interval_length(self, start: int, end: int) -> int:
        """
        Returns the number of sites in the inclusive interval from ``start``
        to ``end``, which wraps past the end of the locus when ``start > end``.
        """
        if start <= end:
            return end - start + 1
        return self.site_count - start + end + 1
