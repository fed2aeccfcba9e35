# flatpay/cli/__main__.py
from __future__ import annotations

import argparse
from datetime import date

from sqlalchemy import select

from ..db import session_scope
from ..logging_config import configure_logging
from ..models import Society
from ..services.invoice_generator import society_today
from ..services.payments import mark_overdue
from ..services.tenancy import SocietyScope
from .seed_demo import seed_demo


def _cmd_seed_demo(args: argparse.Namespace) -> None:
    out = seed_demo(
        society_name=args.society_name,
        profile_id=args.profile_id,
        profile_name=args.profile_name,
    )
    print(
        {
            "ok": True,
            "society_id": out.society_id,
            "profile_id": out.profile_id,
            "units": out.units,
            "residents": out.residents,
        }
    )


def _cmd_mark_overdue(args: argparse.Namespace) -> None:
    with session_scope() as db:
        q = select(Society).order_by(Society.id)
        if args.society_id:
            q = q.where(Society.id == args.society_id)
        results = {}
        for society in db.scalars(q).all():
            scope = SocietyScope(db=db, society_id=int(society.id))
            as_of = date.fromisoformat(args.as_of) if args.as_of else society_today(society)
            results[int(society.id)] = mark_overdue(scope, as_of=as_of)
        print({"ok": True, "marked_overdue": results})


def main() -> None:
    configure_logging()

    p = argparse.ArgumentParser(prog="python -m flatpay.cli")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="create a demo society, admin profile, units and charges")
    s.add_argument("--society-name", default="Demo Heights")
    s.add_argument("--profile-id", default="demo-admin")
    s.add_argument("--profile-name", default="Demo Admin")
    s.set_defaults(func=_cmd_seed_demo)

    m = sub.add_parser("mark-overdue", help="flag unpaid invoices past due date + grace days")
    m.add_argument("--society-id", type=int, default=None)
    m.add_argument("--as-of", default=None, help="YYYY-MM-DD; defaults to today in each society's timezone")
    m.set_defaults(func=_cmd_mark_overdue)

    args = p.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
