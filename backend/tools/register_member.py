"""CLI tool to register a member directly against the configured Supabase project."""
from __future__ import annotations

import argparse
import getpass
import json
from typing import Any, Sequence

from ..config import load_config
from ..registration import RegistrationError, RegistrationService
from ..supabase_client import SupabaseService
from ..validation import Gender, RegistrationForm, validate_registration_form


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register a LINE member (manual backfill)")
    parser.add_argument("--line-id", required=True, help="LINE userId (e.g. U1234...)")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--phone", required=True, help="09 開頭的 10 碼手機號碼")
    parser.add_argument("--birthday", required=True, help="YYYY-MM-DD")
    parser.add_argument("--city", required=True)
    parser.add_argument("--district", required=True)
    parser.add_argument("--nickname", default="")
    parser.add_argument(
        "--gender",
        choices=[gender.value for gender in Gender],
        default=Gender.MALE.value,
    )
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only validate the profile; do not call Supabase",
    )
    return parser.parse_args(argv)


def _payload_from_args(args: argparse.Namespace, password: str) -> dict[str, Any]:
    return {
        "line_id": args.line_id,
        "email": args.email,
        "password": password,
        "name": args.name,
        "nickname": args.nickname,
        "gender": args.gender,
        "phone": args.phone,
        "birthday": args.birthday,
        "city": args.city,
        "district": args.district,
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    config = load_config()

    if args.dry_run:
        payload = _payload_from_args(args, "")
        result = validate_registration_form(
            RegistrationForm.from_mapping(payload), strict_district=config.strict_district
        )
        print(json.dumps({"ok": result.ok, "message": result.message}, ensure_ascii=False))
        return 0 if result.ok else 1

    password = args.password or getpass.getpass("Password: ")
    service = RegistrationService(
        SupabaseService(config),
        customers_table=config.customers_table,
        validate=True,
        strict_district=config.strict_district,
    )
    try:
        user = service.register(_payload_from_args(args, password))
    except RegistrationError as exc:
        print(json.dumps({"message": exc.message, "state": exc.state}, ensure_ascii=False))
        return 1
    print(json.dumps({"message": "註冊成功", "user": user.to_dict()}, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
