"""
Floor Plan Core - CLI Entry Point

Commands:
    clean  - Clean the wall network of a plan file
    rooms  - Clean walls, detect rooms and run room checks
    solve  - Apply dimension constraints from a YAML/JSON file
    lod    - Show the level of detail for a zoom factor
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .cleanup import WallNetworkCleaner
from .config import default_rules, load_rules
from .models import DimensionChain, DimensionConstraint, Parameter
from .parametric import solve
from .pipeline import PlanPipeline
from .plan_file import PlanFileError, create_plan_file, load_plan_data, serialize_plan_file
from .spatial import level_of_detail


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def _rules(args):
    return load_rules(Path(args.rules)) if args.rules else default_rules()


def _load(path):
    try:
        return load_plan_data(Path(path).read_text())
    except (OSError, PlanFileError) as e:
        print(f"Error: could not load {path}: {e}")
        return None


def _write(path, walls, rooms):
    Path(path).write_text(serialize_plan_file(create_plan_file(walls, rooms)))
    print(f"Written: {path}")


def cmd_clean(args):
    """Clean a plan's wall network."""
    loaded = _load(args.input)
    if loaded is None:
        return 1
    walls, rooms = loaded

    result = WallNetworkCleaner(_rules(args).cleanup).clean(walls)
    report = result.report
    print(f"\nWalls: {len(walls)} -> {len(result.walls)}")
    print(f"  Removed duplicates: {report.removed_duplicates}")
    print(f"  Healed gaps:        {report.healed_endpoint_gaps}")
    print(f"  T-junction splits:  {report.split_at_t_junctions}")
    print(f"  Crossing splits:    {report.split_at_intersections}")
    print(f"  Collinear merges:   {report.merged_collinear_walls}")

    if args.output:
        _write(args.output, result.walls, rooms)
    return 0


def cmd_rooms(args):
    """Detect rooms and report diagnostics."""
    loaded = _load(args.input)
    if loaded is None:
        return 1
    walls, previous_rooms = loaded

    rules = _rules(args)
    result = PlanPipeline(rules).run(walls, previous_rooms)
    if not result.success:
        print(f"FAILED: {'; '.join(result.errors)}")
        return 1

    print(f"\nRooms: {len(result.rooms)}")
    for room in result.rooms:
        area_m2 = rules.rooms.area_to_m2(room.area)
        flags = []
        if room.is_exterior:
            flags.append("exterior")
        if room.parent_room_id:
            flags.append(f"in {room.parent_room_id}")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {room.id:<10} {room.name:<14} {area_m2:8.2f} m2{suffix}")

    if result.diagnostics:
        print(f"\nDiagnostics: {len(result.diagnostics)}")
        for message in result.messages:
            print(f"  {message}")

    if args.output:
        _write(args.output, result.walls, result.rooms)
    return 0


def cmd_solve(args):
    """Solve dimension constraints against a plan."""
    loaded = _load(args.input)
    if loaded is None:
        return 1
    walls, rooms = loaded

    try:
        with open(args.constraints, 'r') as f:
            data = yaml.safe_load(f) or {}
        dimensions = [DimensionConstraint(**d) for d in data.get('dimensions', [])]
        chains = [DimensionChain(**c) for c in data.get('chains', [])]
        parameters = [Parameter(**p) for p in data.get('parameters', [])]
    except (OSError, yaml.YAMLError, TypeError) as e:
        print(f"Error: could not read constraints {args.constraints}: {e}")
        return 1

    result = solve(walls, dimensions, chains, parameters, data.get('context') or {},
                   config=_rules(args).solver)

    print(f"\nParameters: {len(result.parameter_values)}")
    for name, value in sorted(result.parameter_values.items()):
        print(f"  {name} = {value:g}")
    print(f"\nWalls: {len(result.walls)}")
    for wall in result.walls:
        print(f"  {wall.id:<10} {wall.length:10.1f}")
    if result.diagnostics:
        print(f"\nDiagnostics: {len(result.diagnostics)}")
        for diagnostic in result.diagnostics:
            print(f"  [{diagnostic.source_id}] {diagnostic}")

    if args.output:
        _write(args.output, result.walls, rooms)
    return 1 if result.errors else 0


def cmd_lod(args):
    """Print the level of detail for a zoom factor."""
    lod = level_of_detail(args.zoom, _rules(args).spatial)
    print(f"zoom {args.zoom:g}: {lod.name} "
          f"(fill={lod.show_fill}, layers={lod.show_layers}, dimensions={lod.show_dimensions})")
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Floor Plan Core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Clean a hand-drawn plan and save the result
  python -m plancore clean --input plan.json --output clean.json

  # Detect rooms
  python -m plancore rooms --input clean.json

  # Drive wall lengths from dimensions
  python -m plancore solve --input clean.json --constraints dims.yaml

  # Level of detail at a zoom factor
  python -m plancore lod --zoom 0.8
        """
    )

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--rules', help='Rules YAML file (default: packaged rules)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Clean command
    clean_parser = subparsers.add_parser('clean', help='Clean the wall network')
    clean_parser.add_argument('--input', '-i', required=True,
                              help='Plan file (JSON envelope)')
    clean_parser.add_argument('--output', '-o',
                              help='Write the cleaned plan here')
    clean_parser.set_defaults(func=cmd_clean)

    # Rooms command
    rooms_parser = subparsers.add_parser('rooms', help='Detect rooms')
    rooms_parser.add_argument('--input', '-i', required=True,
                              help='Plan file (JSON envelope)')
    rooms_parser.add_argument('--output', '-o',
                              help='Write the plan with detected rooms here')
    rooms_parser.set_defaults(func=cmd_rooms)

    # Solve command
    solve_parser = subparsers.add_parser('solve', help='Solve dimension constraints')
    solve_parser.add_argument('--input', '-i', required=True,
                              help='Plan file (JSON envelope)')
    solve_parser.add_argument('--constraints', '-c', required=True,
                              help='YAML/JSON with dimensions, chains, parameters, context')
    solve_parser.add_argument('--output', '-o',
                              help='Write the solved plan here')
    solve_parser.set_defaults(func=cmd_solve)

    # LOD command
    lod_parser = subparsers.add_parser('lod', help='Level of detail for a zoom factor')
    lod_parser.add_argument('--zoom', '-z', type=float, required=True,
                            help='Zoom factor')
    lod_parser.set_defaults(func=cmd_lod)

    args = parser.parse_args()

    setup_logging(args.verbose)

    if args.command:
        return args.func(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
