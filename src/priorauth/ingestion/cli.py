"""
Patient Data Loader CLI

Generates sample Patient bundles and loads Patient data into the configured
store.

Usage:
    priorauth-load generate --patients 25 --output patients.json
    priorauth-load load patients.json
"""
import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from uuid import uuid4

from priorauth.config import get_settings
from priorauth.db.store import StoreError, create_store
from priorauth.ingestion.loader import PatientLoader
from priorauth.mpi.normalizer import PatientNormalizer
from priorauth.observability.logging import configure_logging

IDENTIFIER_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0203"

FIRST_NAMES = ["James", "Mary", "John", "Patricia", "Robert", "Jennifer", "Michael", "Linda",
               "William", "Elizabeth", "David", "Barbara", "Richard", "Susan", "Joseph", "Jessica"]

LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
              "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson", "Thomas"]

CITIES = [("Boston", "MA"), ("New York", "NY"), ("Chicago", "IL"), ("Los Angeles", "CA"), ("Houston", "TX")]


def _typed_identifier(code: str, value: str) -> dict:
    return {
        "type": {"coding": [{"system": IDENTIFIER_TYPE_SYSTEM, "code": code}]},
        "value": value,
    }


def generate_patient(rng: random.Random, patient_id: str | None = None) -> dict:
    """Generate a sample Patient carrying enough data to be matched."""
    first_name = rng.choice(FIRST_NAMES)
    last_name = rng.choice(LAST_NAMES)
    city, state = rng.choice(CITIES)

    identifiers = [
        {"system": "http://hospital.example.org/mrn", "value": f"MRN{rng.randint(100000, 999999)}"},
    ]
    if rng.random() < 0.5:
        identifiers.append(_typed_identifier("PPN", f"P{rng.randint(10000000, 99999999)}"))
    if rng.random() < 0.7:
        identifiers.append(_typed_identifier("DL", f"{state}{rng.randint(1000000, 9999999)}"))

    return {
        "resourceType": "Patient",
        "id": patient_id or str(uuid4()),
        "identifier": identifiers,
        "active": True,
        "name": [{"use": "official", "family": last_name, "given": [first_name]}],
        "gender": rng.choice(["male", "female"]),
        "birthDate": f"{rng.randint(1940, 2005)}-{rng.randint(1, 12):02d}-{rng.randint(1, 28):02d}",
        "address": [
            {
                "use": "home",
                "line": [f"{rng.randint(100, 9999)} Main St"],
                "city": city,
                "state": state,
                "postalCode": f"{rng.randint(10000, 99999)}",
            }
        ],
        "telecom": [
            {"system": "phone", "value": f"555-{rng.randint(100, 999)}-{rng.randint(1000, 9999)}", "use": "home"},
            {"system": "email", "value": f"{first_name.lower()}.{last_name.lower()}@email.com"},
        ],
    }


def generate_bundle(num_patients: int = 5, seed: int | None = None) -> dict:
    """Generate a collection Bundle of sample Patients."""
    rng = random.Random(seed)
    return {
        "resourceType": "Bundle",
        "id": str(uuid4()),
        "type": "collection",
        "entry": [{"resource": generate_patient(rng)} for _ in range(num_patients)],
    }


async def load_file(path: Path) -> int:
    settings = get_settings()
    store = await create_store(settings)
    try:
        loader = PatientLoader(store, PatientNormalizer(settings.match.profile_urls))
        report = await loader.load_file(path)
    finally:
        await store.close()

    print(f"Loaded {len(report.loaded)} patients into the {store.name} store")
    for error in report.errors:
        print(f"  error: {error}")
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and load Patient data")
    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Write a sample Patient bundle")
    generate.add_argument("--patients", type=int, default=5, help="Number of patients to generate")
    generate.add_argument("--seed", type=int, help="Random seed for reproducible output")
    generate.add_argument("--output", type=Path, help="Output file (stdout when omitted)")

    load = commands.add_parser("load", help="Load a Patient or Bundle JSON file into the store")
    load.add_argument("path", type=Path, help="JSON file holding a Patient or a Bundle")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(log_level=settings.app.log_level, json_logs=False, redact=settings.app.redact_phi)

    if args.command == "generate":
        bundle = generate_bundle(args.patients, args.seed)
        text = json.dumps(bundle, indent=2)
        if args.output:
            args.output.write_text(text, encoding="utf-8")
            print(f"Saved bundle with {args.patients} patients to {args.output}")
        else:
            print(text)
        return 0

    try:
        return asyncio.run(load_file(args.path))
    except (OSError, json.JSONDecodeError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
