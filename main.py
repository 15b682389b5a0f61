"""CLI entry point for the medmatch engine."""

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Any

import pydantic
import yaml

from medmatch.core import db
from medmatch.core.config import SearchFilters, Settings
from medmatch.core.errors import MatchError, NotFound, ValidationError
from medmatch.core.schemas import Clinic, Doctor, JobRequirement
from medmatch.lifecycle.connections import ConnectionRegistry
from medmatch.lifecycle.overview import clinic_overview, doctor_overview
from medmatch.lifecycle.pitches import PitchLifecycle
from medmatch.lifecycle.requirements import RequirementBoard
from medmatch.pipeline.geo import make_coordinate
from medmatch.pipeline.ranker import available_strategies
from medmatch.pipeline.search import LocationRequest, SearchOutcome, SearchService
from medmatch.sources.sqlite import SqliteSource


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Path to settings YAML file (default: built-in settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def _add_search_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--radius", type=float, help="Search radius in km")
    parser.add_argument("--lat", type=float, help="Custom location latitude")
    parser.add_argument("--lng", type=float, help="Custom location longitude")
    parser.add_argument("--device-lat", type=float, help="Device location latitude")
    parser.add_argument("--device-lng", type=float, help="Device location longitude")
    parser.add_argument("--text", default="", help="Free-text search term")
    parser.add_argument(
        "--sort",
        choices=available_strategies(),
        help="Sort strategy (default from settings)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="medmatch - match doctors and clinics, manage applications",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("init-db", help="Create the database schema")
    _add_common(p)

    p = subparsers.add_parser("load", help="Load doctors, clinics and requirements from YAML")
    p.add_argument("path", help="Path to seed YAML file")
    _add_common(p)

    p = subparsers.add_parser("search-doctors", help="Find doctors near a clinic")
    p.add_argument("--clinic-id", required=True)
    p.add_argument("--specialization", action="append", default=[])
    p.add_argument("--experience-min", type=int)
    p.add_argument("--experience-max", type=int)
    _add_search_args(p)
    _add_common(p)

    p = subparsers.add_parser("search-clinics", help="Find clinics near a doctor")
    p.add_argument("--doctor-id", required=True)
    p.add_argument("--verified-only", action="store_true")
    p.add_argument("--active-jobs", choices=["all", "with_jobs", "no_jobs"], default="all")
    _add_search_args(p)
    _add_common(p)

    p = subparsers.add_parser("search-requirements", help="Find job requirements near a doctor")
    p.add_argument("--doctor-id", required=True)
    p.add_argument("--specialization", action="append", default=[])
    p.add_argument("--job-type", action="append", default=[])
    p.add_argument("--hide-applied", action="store_true")
    _add_search_args(p)
    _add_common(p)

    p = subparsers.add_parser("pitch", help="Apply to a requirement")
    p.add_argument("--doctor-id", required=True)
    p.add_argument("--requirement-id", required=True)
    p.add_argument("--message", required=True)
    _add_common(p)

    for name, actor in (("accept", "--clinic-id"), ("reject", "--clinic-id"),
                        ("withdraw", "--doctor-id")):
        p = subparsers.add_parser(name, help=f"{name.capitalize()} a pending pitch")
        p.add_argument("--pitch-id", required=True)
        p.add_argument(actor, required=True)
        _add_common(p)

    p = subparsers.add_parser("close", help="Close a requirement, rejecting pending pitches")
    p.add_argument("--requirement-id", required=True)
    p.add_argument("--clinic-id", required=True)
    _add_common(p)

    for name in ("connections", "overview"):
        p = subparsers.add_parser(name, help=f"Show {name} for a doctor or clinic")
        who = p.add_mutually_exclusive_group(required=True)
        who.add_argument("--doctor-id")
        who.add_argument("--clinic-id")
        _add_common(p)

    return parser.parse_args(argv)


def setup_logging(verbose: bool, level: str = "INFO") -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    return Settings.from_yaml(path) if path else Settings()


def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _dump(model: pydantic.BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _seed_record(model: type[pydantic.BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        msg = f"Invalid {model.__name__.lower()} {data.get('id', '?')!r}: {e.errors()[0]['msg']}"
        raise ValidationError(msg) from e


def load_seed(conn: sqlite3.Connection, path: str | Path) -> dict[str, int]:
    """Upsert doctors and clinics and insert requirements from a seed YAML file.

    Returns counts of loaded rows per section.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Seed file not found: {path}"
        raise FileNotFoundError(msg)
    raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
    doctors = [_seed_record(Doctor, d) for d in raw.get("doctors", [])]
    clinics = [_seed_record(Clinic, c) for c in raw.get("clinics", [])]
    requirements = [_seed_record(JobRequirement, r) for r in raw.get("requirements", [])]
    with db.transaction(conn):
        for doctor in doctors:
            db.upsert_doctor(conn, doctor)
        for clinic in clinics:
            db.upsert_clinic(conn, clinic)
        for requirement in requirements:
            if db.get_clinic(conn, requirement.clinic_id) is None:
                msg = (
                    f"Requirement '{requirement.id}' references unknown clinic "
                    f"'{requirement.clinic_id}'"
                )
                raise NotFound(msg)
            if db.get_requirement(conn, requirement.id) is None:
                db.insert_requirement(conn, requirement)
    return {
        "doctors": len(doctors),
        "clinics": len(clinics),
        "requirements": len(requirements),
    }


def _location(args: argparse.Namespace) -> LocationRequest:
    custom = device = None
    if args.lat is not None and args.lng is not None:
        custom = make_coordinate(args.lat, args.lng)
    if args.device_lat is not None and args.device_lng is not None:
        device = make_coordinate(args.device_lat, args.device_lng)
    return LocationRequest(custom=custom, device=device)


def _outcome(outcome: SearchOutcome) -> dict[str, Any]:
    return {
        "reason": outcome.reason.value,
        "origin": _dump(outcome.origin) if outcome.origin else None,
        "origin_source": outcome.origin_source.value if outcome.origin_source else None,
        "radius_km": outcome.radius_km,
        "pool_size": outcome.pool_size,
        "results": [_dump(r) for r in outcome.results],
    }


def cmd_search(args: argparse.Namespace, conn: sqlite3.Connection, settings: Settings) -> None:
    service = SearchService(SqliteSource(conn), settings.search)
    location = _location(args)
    if args.command == "search-doctors":
        low, high = args.experience_min, args.experience_max
        if low is not None or high is not None:
            # A one-sided range takes the other bound from settings.
            low = settings.search.experience_min if low is None else low
            high = settings.search.experience_max if high is None else high
        filters = SearchFilters(
            text=args.text,
            specializations=args.specialization,
            experience_min=low,
            experience_max=high,
        )
        outcome = service.search_doctors(args.clinic_id, filters, args.sort, args.radius, location)
    elif args.command == "search-clinics":
        filters = SearchFilters(
            text=args.text,
            verified_only=args.verified_only,
            active_jobs=args.active_jobs,
        )
        outcome = service.search_clinics(args.doctor_id, filters, args.sort, args.radius, location)
    else:
        filters = SearchFilters(
            text=args.text,
            specializations=args.specialization,
            job_types=args.job_type,
            hide_applied=args.hide_applied,
        )
        outcome = service.search_requirements(
            args.doctor_id, filters, args.sort, args.radius, location,
        )
    _emit(_outcome(outcome))


def cmd_lifecycle(args: argparse.Namespace, conn: sqlite3.Connection) -> None:
    lifecycle = PitchLifecycle(conn)
    if args.command == "pitch":
        pitch = lifecycle.create(args.doctor_id, args.requirement_id, args.message)
    elif args.command == "accept":
        pitch = lifecycle.accept(args.pitch_id, args.clinic_id)
    elif args.command == "reject":
        pitch = lifecycle.reject(args.pitch_id, args.clinic_id)
    else:
        pitch = lifecycle.withdraw(args.pitch_id, args.doctor_id)
    _emit(_dump(pitch))


def cmd_views(args: argparse.Namespace, conn: sqlite3.Connection) -> None:
    if args.command == "close":
        rejected = RequirementBoard(conn).close(args.requirement_id, args.clinic_id)
        _emit({"rejected": [_dump(p) for p in rejected]})
    elif args.command == "connections":
        registry = ConnectionRegistry(conn)
        if args.doctor_id:
            _emit([_dump(c) for c in registry.list_for_doctor(args.doctor_id)])
        else:
            _emit([_dump(g) for g in registry.group_by_doctor(args.clinic_id)])
    elif args.doctor_id:
        _emit(_dump(doctor_overview(conn, args.doctor_id)))
    else:
        _emit(_dump(clinic_overview(conn, args.clinic_id)))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, pydantic.ValidationError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(args.verbose, settings.logging.level)

    conn = db.init_db(settings.database.path, settings.database.busy_timeout_s)
    try:
        if args.command == "init-db":
            print(f"Database ready at {settings.database.path}")
        elif args.command == "load":
            counts = load_seed(conn, args.path)
            print(f"Loaded {counts['doctors']} doctors, {counts['clinics']} clinics, "
                  f"{counts['requirements']} requirements")
        elif args.command.startswith("search-"):
            cmd_search(args, conn, settings)
        elif args.command in ("pitch", "accept", "reject", "withdraw"):
            cmd_lifecycle(args, conn)
        else:
            cmd_views(args, conn)
    except MatchError as e:
        print(f"Error ({e.code}): {e.message}", file=sys.stderr)
        sys.exit(1)
    except (FileNotFoundError, pydantic.ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
