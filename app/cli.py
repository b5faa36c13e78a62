"""CLI commands for Guest List Access."""

import argparse
import sys
from datetime import timedelta

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.services.access.clock import as_utc
from app.services.access.context import RequestContext
from app.services.access.errors import AccessError
from app.services.access.invitation_chain import PartyInfo
from app.services.access.service import InvitationService
from app.services.notifications import get_notification_sender

CLI_CONTEXT = RequestContext(actor="cli")


def _service(db: Session) -> InvitationService:
    return InvitationService(db, get_notification_sender())


def create_share(
    guest_list_id: int,
    email: str,
    name: str | None = None,
    kind: str = "share",
    ttl_days: int | None = None,
) -> None:
    """Issue a root link for a guest list and print its URL."""
    db: Session = SessionLocal()

    try:
        if ttl_days is not None and ttl_days < 1:
            print("Error: --ttl-days must be at least 1.")
            sys.exit(1)
        try:
            issued = _service(db).create_share(
                guest_list_id,
                PartyInfo(name=name or "", email=email),
                kind=kind,
                ttl=timedelta(days=ttl_days) if ttl_days else None,
                context=CLI_CONTEXT,
            )
        except AccessError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        print(f"Token {issued.id} expires {issued.expires_at.isoformat()}")
        print(issued.share_url)

    finally:
        db.close()


def revoke(token_id: int) -> None:
    """Revoke a token by id."""
    db: Session = SessionLocal()

    try:
        try:
            changed = _service(db).revoke(token_id, context=CLI_CONTEXT)
        except AccessError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        if changed:
            print(f"Token {token_id} revoked.")
        else:
            print(f"Token {token_id} was already revoked.")

    finally:
        db.close()


def chain(token_id: int) -> None:
    """Print the provenance of a token, root first."""
    db: Session = SessionLocal()

    try:
        try:
            tokens = _service(db).ancestry(token_id)
        except AccessError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        for token in tokens:
            state = "revoked" if token.revoked else f"expires {as_utc(token.expires_at).isoformat()}"
            forwarded = f" forwarded by {token.forwarded_by_name}" if token.forwarded_by_name else ""
            print(f"{'  ' * token.depth}#{token.id} depth={token.depth} {token.kind} {state}{forwarded}")

    finally:
        db.close()


def sweep() -> None:
    """Close expired verification challenges."""
    db: Session = SessionLocal()

    try:
        closed = _service(db).otp.sweep_expired()
        print(f"Closed {closed} expired challenge(s).")

    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Guest List Access CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # create-share command
    create_share_parser = subparsers.add_parser(
        "create-share", help="Issue a link for a guest list"
    )
    create_share_parser.add_argument(
        "--guest-list-id", type=int, required=True, help="Guest list id"
    )
    create_share_parser.add_argument(
        "--email", required=True, help="Recipient email address"
    )
    create_share_parser.add_argument("--name", help="Recipient name")
    create_share_parser.add_argument(
        "--kind", choices=["share", "rsvp"], default="share", help="Link kind"
    )
    create_share_parser.add_argument(
        "--ttl-days", type=int, help="Lifetime in days (defaults per kind)"
    )

    # revoke command
    revoke_parser = subparsers.add_parser("revoke", help="Revoke a link")
    revoke_parser.add_argument("token_id", type=int, help="Token id")

    # chain command
    chain_parser = subparsers.add_parser("chain", help="Show how a link was forwarded")
    chain_parser.add_argument("token_id", type=int, help="Token id")

    # sweep command
    subparsers.add_parser("sweep", help="Close expired verification challenges")

    args = parser.parse_args()

    if args.command == "create-share":
        create_share(args.guest_list_id, args.email, args.name, args.kind, args.ttl_days)
    elif args.command == "revoke":
        revoke(args.token_id)
    elif args.command == "chain":
        chain(args.token_id)
    elif args.command == "sweep":
        sweep()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
