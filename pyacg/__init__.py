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
Pyacg simulates and manipulates ancestral conversion graphs, the
genealogies of bacterial genomes evolving under clonal descent with
homologous gene conversion.
"""

from pyacg.core import __version__

from pyacg.clonal_frame import ClonalFrame, NULL
from pyacg.conversions import Conversion

from pyacg.demography import (
    ConstantPopulation,
    ExponentialGrowth,
    PiecewiseConstantPopulation,
    PopulationFunction,
)

from pyacg.events import CFEvent, EventType
from pyacg.exceptions import (
    ConversionGraphError,
    ExtendedNewickError,
    FileFormatError,
    PyacgException,
    UnknownLocusError,
)

from pyacg.formats import (
    parse_extended_newick,
    parse_nexus,
    read_nexus,
    to_extended_newick,
    write_nexus,
)

from pyacg.graph import ConversionGraph
from pyacg.loci import Locus

from pyacg.operators import (
    ACGOperator,
    AddRemoveConversion,
    ConversionCreationOperator,
    ConvertedRegionShift,
    MergeSplitConversion,
)

from pyacg.regions import Region
from pyacg.simulations import sim_arg
from pyacg.tracts import CircularTractModel, TractPlacement
