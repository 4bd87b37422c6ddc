"""
vaultdoc - CLI Entry Point.

Usage:
    vaultdoc health                      Check configuration
    vaultdoc db                          Row counts per table
    vaultdoc stats                       Dashboard aggregates
    vaultdoc create-admin EMAIL NAME     Create (or promote) an admin user
    vaultdoc make-admin EMAIL            Promote an existing user
    vaultdoc --help                      Show help
"""

import asyncio
import logging
import re
from datetime import timedelta

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="vaultdoc",
    help="vaultdoc - document store over Supabase for the wallet platform.",
    add_completion=False,
)
console = Console()

TABLES = [
    "users",
    "user_wallets",
    "user_notifications",
    "user_refresh_tokens",
    "wallets",
    "transactions",
    "balances",
    "tokens",
    "webhooks",
    "webhook_events",
    "audit_logs",
    "support_tickets",
]


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log storage round trips")) -> None:
    from vaultdoc.config import settings

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def password_problems(password: str) -> list[str]:
    """What an admin password is missing; empty when it is strong enough."""
    problems = []
    if len(password) < 12:
        problems.append("at least 12 characters")
    if not re.search(r"[A-Z]", password):
        problems.append("one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("one lowercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        problems.append("one special character")
    return problems


@app.command()
def health() -> None:
    """Check configuration."""
    from vaultdoc.config import get_settings

    console.print("\n[bold]vaultdoc Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.vaultdoc_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Strict queries: {settings.strict_queries}")
        console.print(f"   Query window: {settings.query_window} rows")

        if settings.supabase_url and settings.supabase_url.startswith("https://"):
            console.print("✅ Supabase URL configured")
        else:
            console.print("❌ Supabase URL missing or invalid")

        if settings.supabase_service_role_key:
            console.print("✅ Supabase service role key configured")
        else:
            console.print("❌ Supabase service role key missing")

        if not settings.storage_configured:
            raise typer.Exit(1)

        console.print("\n[green]All checks passed![/green]")

    except ValueError as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from vaultdoc import __version__

    console.print(f"vaultdoc version {__version__}")


@app.command()
def db() -> None:
    """Check database connection and per-table row counts."""
    from vaultdoc.db.client import get_client

    async def count_rows() -> dict[str, int | str]:
        client = await get_client()
        counts: dict[str, int | str] = {}
        for table in TABLES:
            try:
                result = await client.table(table).select("id", count="exact", head=True).execute()
                counts[table] = result.count or 0
            except Exception as e:
                counts[table] = f"error: {e}"
        return counts

    console.print("\n[bold]Database Connection Check[/bold]\n")

    try:
        counts = asyncio.run(count_rows())
    except Exception as e:
        console.print(f"\n[red]❌ Database connection failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("✅ Connected to Supabase")
    console.print("\n[bold]Table Status:[/bold]")
    for table, count in counts.items():
        if isinstance(count, int):
            console.print(f"  ✅ {table}: {count} rows")
        else:
            console.print(f"  ❌ {table}: {count}")

    console.print("\n[green]Database check complete![/green]")


@app.command()
def stats(days: int = typer.Option(30, "--days", "-d", help="Window for growth and volume")) -> None:
    """Show the admin dashboard aggregates."""
    from vaultdoc.docstore.values import utcnow
    from vaultdoc.repositories import TransactionRepository, UserRepository

    async def collect() -> dict:
        users = UserRepository()
        transactions = TransactionRepository()
        since = utcnow() - timedelta(days=days)
        by_day = {"$dateToString": {"format": "%Y-%m-%d", "date": "$createdAt"}}

        return {
            "users": await users.count_documents(),
            "wallets": await users.aggregate(
                [
                    {"$project": {"walletCount": {"$size": "$wallets"}}},
                    {"$group": {"_id": None, "total": {"$sum": "$walletCount"}}},
                ]
            ),
            "growth": await users.aggregate(
                [
                    {"$match": {"createdAt": {"$gte": since}}},
                    {"$group": {"_id": by_day, "count": {"$sum": 1}}},
                    {"$sort": {"_id": 1}},
                ]
            ),
            "volume": await transactions.aggregate(
                [
                    {"$match": {"createdAt": {"$gte": since}, "status": "completed"}},
                    {"$group": {"_id": by_day, "count": {"$sum": 1}, "totalAmount": {"$sum": "$amount"}}},
                    {"$sort": {"_id": 1}},
                ]
            ),
            "popular": await transactions.aggregate(
                [
                    {"$group": {"_id": "$cryptocurrency", "count": {"$sum": 1}, "totalAmount": {"$sum": "$amount"}}},
                    {"$sort": {"count": -1}},
                    {"$limit": 10},
                ]
            ),
        }

    try:
        data = asyncio.run(collect())
    except Exception as e:
        console.print(f"\n[red]❌ Could not compute stats: {e}[/red]")
        raise typer.Exit(1)

    wallet_total = data["wallets"][0]["total"] if data["wallets"] else 0
    console.print(f"\n[bold]Users:[/bold] {data['users']}    [bold]Wallets:[/bold] {wallet_total}\n")

    growth = Table(title=f"New users (last {days} days)")
    growth.add_column("Day")
    growth.add_column("Users", justify="right")
    for row in data["growth"]:
        growth.add_row(row["_id"], str(row["count"]))
    console.print(growth)

    volume = Table(title=f"Completed transactions (last {days} days)")
    volume.add_column("Day")
    volume.add_column("Count", justify="right")
    volume.add_column("Amount", justify="right")
    for row in data["volume"]:
        volume.add_row(row["_id"], str(row["count"]), f"{row['totalAmount']:.8g}")
    console.print(volume)

    popular = Table(title="Popular currencies")
    popular.add_column("Currency")
    popular.add_column("Transactions", justify="right")
    popular.add_column("Amount", justify="right")
    for row in data["popular"]:
        popular.add_row(str(row["_id"]), str(row["count"]), f"{row['totalAmount']:.8g}")
    console.print(popular)


@app.command("create-admin")
def create_admin(
    email: str = typer.Argument(..., help="Admin email"),
    name: str = typer.Argument(..., help="Display name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
) -> None:
    """Create an admin user, or promote the existing user with that email."""
    from vaultdoc.repositories import UserRepository

    problems = password_problems(password)
    if problems:
        console.print("\n[red]❌ Password too weak. It must contain:[/red]")
        for problem in problems:
            console.print(f"  - {problem}")
        raise typer.Exit(1)

    async def create():
        users = UserRepository()
        existing = await users.find_by_email(email)
        if existing is not None:
            if existing.is_admin:
                return existing, "unchanged"
            await users.find_by_id_and_update(existing.id, {"$set": {"role": "admin", "isAdmin": True}})
            return existing, "promoted"
        admin = await users.create({"email": email, "name": name.strip(), "password": password, "role": "admin"})
        return admin, "created"

    try:
        user, outcome = asyncio.run(create())
    except Exception as e:
        console.print(f"\n[red]❌ Could not create admin: {e}[/red]")
        raise typer.Exit(1)

    if outcome == "unchanged":
        console.print(f"\nℹ️  {user.email} is already an admin. No changes made.")
    elif outcome == "promoted":
        console.print(f"\n✅ Existing user {user.email} promoted to admin.")
    else:
        console.print("\n[green]✅ Admin user created[/green]")
        console.print(f"   Name:  {user.name}")
        console.print(f"   Email: {user.email}")
        console.print(f"   ID:    {user}")


@app.command("make-admin")
def make_admin(email: str = typer.Argument(..., help="Email of an existing user")) -> None:
    """Promote an existing user to admin."""
    from vaultdoc.repositories import UserRepository

    async def promote():
        users = UserRepository()
        return await users.find_one_and_update(
            {"email": email.strip().lower()},
            {"$set": {"role": "admin", "isAdmin": True}},
        )

    try:
        user = asyncio.run(promote())
    except Exception as e:
        console.print(f"\n[red]❌ Could not promote user: {e}[/red]")
        raise typer.Exit(1)

    if user is None:
        console.print(f"\n[red]❌ No user with email {email}[/red]")
        raise typer.Exit(1)
    console.print(f"\n✅ {user.email} is now an admin.")


if __name__ == "__main__":
    app()
