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
Command line interface to the pyacg library.
"""
import argparse
import logging
import os
import signal
import sys

import daiquiri

import pyacg
from pyacg import core

logger = logging.getLogger(__name__)


def set_sigpipe_handler():
    if os.name == "posix":
        # Set signal handler for SIGPIPE to quietly kill the program.
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)


def positive_int(value):
    int_value = int(float(value))
    if int_value <= 0:
        msg = f"{value} in an invalid postive integer value"
        raise argparse.ArgumentTypeError(msg)
    return int_value


def non_negative_float(value):
    float_value = float(value)
    if float_value < 0:
        msg = f"{value} is an invalid non-negative value"
        raise argparse.ArgumentTypeError(msg)
    return float_value


def locus_spec(value):
    """
    Parses a locus specification of the form ID:LENGTH or ID:LENGTH:circular.
    """
    parts = value.split(":")
    if len(parts) not in (2, 3) or len(parts[0]) == 0:
        raise argparse.ArgumentTypeError(
            f"Locus '{value}' must be of the form ID:LENGTH[:circular]"
        )
    circular = False
    if len(parts) == 3:
        if parts[2] != "circular":
            raise argparse.ArgumentTypeError(
                f"Unknown locus option '{parts[2]}' in '{value}'"
            )
        circular = True
    try:
        return pyacg.Locus(parts[0], positive_int(parts[1]), circular=circular)
    except (ValueError, argparse.ArgumentTypeError):
        raise argparse.ArgumentTypeError(f"Invalid locus length in '{value}'")


def setup_logging(args):
    log_level = "WARN"
    if args.verbose == 1:
        log_level = "INFO"
    elif args.verbose >= 2:
        log_level = "DEBUG"
    log_output = daiquiri.output.Stream(
        sys.stderr,
        formatter=daiquiri.formatter.ColorFormatter(fmt="[%(levelname)s] %(message)s"),
    )
    daiquiri.setup(level=log_level, outputs=[log_output])


def get_population_function(args):
    if args.growth_rate is None:
        return pyacg.ConstantPopulation(args.population_size)
    return pyacg.ExponentialGrowth(args.population_size, args.growth_rate)


def run_simulate(args):
    setup_logging(args)
    random_seed = core._parse_random_seed(args.random_seed)
    loci = args.locus
    if len(loci) == 0:
        loci = [pyacg.Locus("locus", 10000)]
    logger.info(
        "Simulating %d leaves on %d loci with seed %s",
        args.num_leaves,
        len(loci),
        random_seed,
    )
    graph = pyacg.sim_arg(
        args.num_leaves,
        loci=loci,
        rho=args.rho,
        delta=args.delta,
        population_function=get_population_function(args),
        whole_locus_mode=args.whole_locus,
        circular_tract_model=args.circular_tract_model,
        random_seed=random_seed,
    )
    logger.info(
        "Simulated %d conversions, %d of which affect no sampled site",
        graph.get_total_conv_count(),
        graph.get_useless_conv_count(),
    )
    if args.format == "nexus":
        pyacg.write_nexus(graph, sys.stdout)
    elif args.format == "clonal-frame":
        print(graph.clonal_frame.newick())
    else:
        print(graph.to_extended_newick())


def add_simulate_subcommand(subparsers) -> None:
    parser = subparsers.add_parser(
        "simulate", help="Simulate an ancestral conversion graph"
    )
    parser.add_argument(
        "num_leaves", type=positive_int, help="The number of sampled genomes"
    )
    parser.add_argument(
        "--locus",
        "-l",
        type=locus_spec,
        action="append",
        default=[],
        help=(
            "A locus, specified as ID:LENGTH or ID:LENGTH:circular. May be "
            "given multiple times. Defaults to a single linear locus of "
            "10000 sites."
        ),
    )
    parser.add_argument(
        "--rho",
        "-r",
        type=non_negative_float,
        default=0,
        help="The conversion rate per site per unit of time",
    )
    parser.add_argument(
        "--delta",
        "-d",
        type=float,
        default=100,
        help="The mean conversion tract length",
    )
    parser.add_argument(
        "--population-size",
        "-N",
        type=float,
        default=1,
        help="The population size, or the initial size under exponential growth",
    )
    parser.add_argument(
        "--growth-rate",
        "-g",
        type=float,
        default=None,
        help="The exponential growth rate of the population",
    )
    parser.add_argument(
        "--circular-tract-model",
        choices=[model.value for model in pyacg.CircularTractModel],
        default=None,
        help="The tract length distribution on circular loci",
    )
    parser.add_argument(
        "--whole-locus",
        action="store_true",
        help="Each conversion covers a whole locus",
    )
    parser.add_argument(
        "--random-seed",
        "-s",
        type=int,
        default=None,
        help="The random seed. If not specified one is chosen randomly",
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=["newick", "nexus", "clonal-frame"],
        default="newick",
        help=(
            "The output format. clonal-frame writes the clonal frame alone as "
            "plain Newick with the leaves named by their labels"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase the logging verbosity",
    )
    parser.set_defaults(runner=run_simulate)


def get_pyacg_parser():
    top_parser = argparse.ArgumentParser(
        description="Command line interface for pyacg."
    )
    top_parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {pyacg.__version__}"
    )
    subparsers = top_parser.add_subparsers(dest="subcommand")
    subparsers.required = True

    add_simulate_subcommand(subparsers)

    return top_parser


def pyacg_main(arg_list=None):
    set_sigpipe_handler()
    parser = get_pyacg_parser()
    args = parser.parse_args(arg_list)
    try:
        args.runner(args)
    except (ValueError, pyacg.PyacgException) as e:
        parser.error(str(e))
