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
Exceptions defined in pyacg.
"""


class PyacgException(Exception):
    """
    Superclass of all exceptions thrown.
    """


class ConversionGraphError(PyacgException):
    """
    A precondition of a conversion graph operation was violated, such as
    adding a conversion to a locus that does not allow conversions or
    deleting a conversion that is not in the graph.
    """


class FileFormatError(PyacgException):
    """
    Some file format error was detected.
    """


class ExtendedNewickError(FileFormatError):
    """
    An extended Newick string could not be interpreted as a conversion graph.
    """


class UnknownLocusError(ExtendedNewickError):
    """
    An extended Newick string referred to a locus that is not among the
    loci of the graph being built.
    """

    def __init__(self, locus_id):
        super().__init__(f"Unknown locus '{locus_id}'")
        self.locus_id = locus_id
