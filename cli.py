#!/usr/bin/env python3
"""
Preva CLI

Command-line interface for running the API server and managing demo data.
"""

import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()


def setup_paths():
    """Add the project root to sys.path for imports."""
    root = Path(__file__).parent
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


setup_paths()


DEMO_NURSE = {
    "email": "nandhu.alahari@gmail.com",
    "password": "nurse123",
    "name": "Nandhu Alahari",
    "contact_info": {
        "phone": "(555) 100-2000",
        "address": "123 Care Lane, Clinic City, CC 12345",
        "emergency_contact": "Clinic front desk (555) 100-2001",
    },
}

DEMO_PATIENT_PASSWORD = "patient123"

DEMO_PATIENTS = [
    {
        "name": "Mary Thompson",
        "age": 74,
        "conditions": ["CHF", "Hypertension", "Type 2 Diabetes"],
        "prior_hospitalizations": 2,
        "risk_score": 42,
        "risk_trend": "up",
        "days_since_visit": 2,
        "medications": [
            {"name": "Lisinopril", "dosage": "20mg", "frequency": "Once daily"},
            {"name": "Metformin", "dosage": "500mg", "frequency": "Twice daily"},
            {"name": "Furosemide", "dosage": "40mg", "frequency": "Once daily"},
        ],
        "username": "mary.t",
        "contact_info": {"phone": "(555) 111-2222", "address": "456 Home St, City, ST 67890"},
    },
    {
        "name": "Robert Chen",
        "age": 68,
        "conditions": ["COPD", "Hypertension"],
        "prior_hospitalizations": 1,
        "risk_score": 35,
        "risk_trend": "stable",
        "days_since_visit": 3,
        "medications": [
            {"name": "Tiotropium", "dosage": "18mcg", "frequency": "Once daily (inhaler)"},
            {"name": "Albuterol", "dosage": "90mcg", "frequency": "As needed"},
            {"name": "Amlodipine", "dosage": "10mg", "frequency": "Once daily"},
        ],
        "username": "robert.c",
        "contact_info": {"phone": "(555) 222-3333"},
    },
    {
        "name": "Linda Garcia",
        "age": 71,
        "conditions": ["Post-op Hip Replacement"],
        "prior_hospitalizations": 0,
        "risk_score": 18,
        "risk_trend": "down",
        "days_since_visit": 1,
        "medications": [
            {"name": "Acetaminophen", "dosage": "500mg", "frequency": "Every 6 hours as needed"},
            {"name": "Enoxaparin", "dosage": "40mg", "frequency": "Once daily (injection)"},
            {"name": "Calcium + Vitamin D", "dosage": "600mg/400IU", "frequency": "Twice daily"},
        ],
        "username": "linda.g",
        "contact_info": {"phone": "(555) 333-4444", "address": "789 Oak Ave"},
    },
]


def seed_demo_data(today: Optional[date] = None) -> Optional[dict]:
    """
    Create the demo nurse and three patients with logins.

    Returns None without writing anything when the demo nurse already exists.
    """
    from preva.auth import hash_password
    from preva.db import PatientRepository, UserRepository
    from preva.models import ContactInfo, initials_for

    today = today or date.today()
    users = UserRepository()
    if users.get_by_email(DEMO_NURSE["email"]):
        return None

    nurse = users.create_nurse(
        DEMO_NURSE["email"], hash_password(DEMO_NURSE["password"]), name=DEMO_NURSE["name"]
    )
    users.update_contact_info(nurse.id, ContactInfo(**DEMO_NURSE["contact_info"]))

    patients = PatientRepository()
    patient_hash = hash_password(DEMO_PATIENT_PASSWORD)
    created = []
    for demo in DEMO_PATIENTS:
        patient = patients.create(
            nurse_id=nurse.id,
            name=demo["name"],
            age=demo["age"],
            conditions=demo["conditions"],
            medications=demo["medications"],
            prior_hospitalizations=demo["prior_hospitalizations"],
            image_initials=initials_for(demo["name"]),
            risk_score=demo["risk_score"],
            risk_trend=demo["risk_trend"],
            last_visit_date=(today - timedelta(days=demo["days_since_visit"])).isoformat(),
        )
        user = users.create_patient_user(
            username=demo["username"],
            password_hash=patient_hash,
            nurse_id=nurse.id,
            patient_id=patient.id,
            contact_info=ContactInfo(**demo["contact_info"]),
        )
        created.append(patients.update(patient.id, user_id=user.id) or patient)

    return {"nurse": nurse, "patients": created}


@click.group()
@click.version_option(version="0.1.0", prog_name="preva")
def cli():
    """
    Preva - Home health care coordination

    Risk scoring, scheduling and messaging for home-care nurses and
    their patients.
    """
    from preva.logging_setup import configure_logging
    configure_logging()


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", "-p", type=int, default=8000, help="Port to listen on")
def serve(host: str, port: int):
    """
    Run the API server.
    """
    from server import run_server

    console.print(f"[bold]Preva API[/bold] on http://{host}:{port}")
    run_server(host=host, port=port)


@cli.command()
def seed():
    """
    Load the demo nurse and patients.

    Skips everything if the demo nurse already exists.
    """
    from preva.errors import ConfigurationError

    try:
        result = seed_demo_data()
    except ConfigurationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)

    if result is None:
        console.print("[yellow]Demo nurse already exists. Skipping seed.[/yellow]")
        return

    table = Table(title="Demo patients")
    table.add_column("Name")
    table.add_column("Username")
    table.add_column("Risk", justify="right")
    table.add_column("Trend")
    for patient, demo in zip(result["patients"], DEMO_PATIENTS):
        table.add_row(patient.name, demo["username"], str(patient.risk_score), patient.risk_trend.value)
    console.print(table)

    console.print(f"\n[green]✓ Nurse:[/green]    {DEMO_NURSE['email']}  /  {DEMO_NURSE['password']}")
    console.print(f"[green]✓ Patients:[/green] {', '.join(p['username'] for p in DEMO_PATIENTS)}"
                  f"  /  {DEMO_PATIENT_PASSWORD}")


@cli.command("create-nurse")
@click.option("--email", "-e", required=True, help="Login email")
@click.option("--name", "-n", help="Display name")
@click.password_option(help="Login password")
def create_nurse(email: str, name: Optional[str], password: str):
    """
    Create a nurse account.
    """
    from preva.workflows.accounts import register_nurse

    result = register_nurse(email, password, name=name)
    if not result.ok:
        console.print(f"[red]Error: {result.error}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Created nurse {result.value['user']['email']}[/green]")


@cli.command()
def info():
    """
    Show information about Preva and its configuration.
    """
    import os

    console.print(Panel(
        "[bold]Preva[/bold]\n\n"
        "Home health care coordination for nurses and patients:\n"
        "• Visit notes turned into risk scores and SOAP notes\n"
        "• Appointment calendar and nurse/patient chat\n"
        "• Patient voice check-ins with symptom extraction\n\n"
        "[dim]Backed by Supabase, Anthropic and ElevenLabs.[/dim]",
        title="About",
        border_style="blue",
    ))

    console.print("\n[bold]Configuration:[/bold]")
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_KEY", "SESSION_SECRET",
                 "ANTHROPIC_API_KEY", "ELEVENLABS_API_KEY"):
        mark = "[green]set[/green]" if os.environ.get(name) else "[red]missing[/red]"
        console.print(f"  • {name}: {mark}")

    console.print("\n[bold]Quick Start:[/bold]")
    console.print("  preva seed")
    console.print("  preva serve --port 8000")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
