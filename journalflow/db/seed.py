"""Database seeding for journalflow.

Creates workflow organizations, users, memberships and approval routes from a
YAML file or from the built-in default (route K-001: 申請 by K001, then 承認
by K002). Seeding is idempotent: existing rows are left as they are.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from sqlalchemy.orm import Session

from journalflow.core.config import Settings
from journalflow.core.routing.layout import FlowLayout
from journalflow.db.models import User, WorkflowOrganization, WorkflowOrganizationUser, WorkflowRoute
from journalflow.services.masters import RouteService


DEFAULT_SEED: Dict[str, Any] = {
    "organizations": [
        {"code": "K001", "name": "経理部（申請者）", "sort_order": 1},
        {"code": "K002", "name": "経理部（承認者）", "sort_order": 2},
    ],
    "users": [],
    "routes": [
        {
            "code": "K-001",
            "name": "経理承認ルート",
            "active": True,
            "steps": [
                {"step_number": 1, "organization_code": "K001", "step_name": "申請", "is_required": True},
                {"step_number": 2, "organization_code": "K002", "step_name": "承認", "is_required": True},
            ],
        }
    ],
}


def load_seed_file(path: str) -> Dict[str, Any]:
    """
    Load seed data from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is invalid YAML
        TypeError: If the document root is not a mapping
    """
    seed_file = Path(path)

    if not seed_file.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")

    with seed_file.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise TypeError(f"Seed file root must be a mapping, got {type(data).__name__}")

    return _expand_env_vars(data)


def _expand_env_vars(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def seed_organization(db: Session, code: str, name: str, *, sort_order: Optional[int] = None) -> WorkflowOrganization:
    existing = db.query(WorkflowOrganization).filter(WorkflowOrganization.organization_code == code).first()
    if existing:
        return existing

    org = WorkflowOrganization(organization_code=code, organization_name=name, sort_order=sort_order)
    db.add(org)
    db.flush()
    return org


def seed_user(db: Session, user_id: str, *, user_code: Optional[str] = None, user_name: Optional[str] = None,
              email: Optional[str] = None) -> User:
    existing = db.query(User).filter(User.user_id == user_id).first()
    if existing:
        return existing

    user = User(user_id=user_id, user_code=user_code or user_id, user_name=user_name or user_id, email=email)
    db.add(user)
    db.flush()
    return user


def seed_membership(db: Session, organization_code: str, user_id: str) -> WorkflowOrganizationUser:
    existing = db.query(WorkflowOrganizationUser).filter(
        WorkflowOrganizationUser.organization_code == organization_code,
        WorkflowOrganizationUser.user_id == user_id,
    ).first()
    if existing:
        return existing

    membership = WorkflowOrganizationUser(organization_code=organization_code, user_id=user_id)
    db.add(membership)
    db.flush()
    return membership


def seed_route(db: Session, entry: Dict[str, Any], settings: Optional[Settings] = None) -> WorkflowRoute:
    """
    Create a route with its steps and a left-to-right editor layout.

    The route is created inactive and, when the entry asks for it, activated
    through RouteService so an invalid route raises StructureError instead of
    being stored active. An existing route is returned untouched.
    """
    code = entry["code"]
    service = RouteService(db, settings)
    existing = service.repository.find_route(code)
    if existing:
        return existing

    steps = sorted(entry.get("steps", []), key=lambda s: s["step_number"])
    names = {
        o.organization_code: o.organization_name
        for o in db.query(WorkflowOrganization).filter(
            WorkflowOrganization.organization_code.in_([s["organization_code"] for s in steps])
        )
    }
    layout = FlowLayout.linear([(s["organization_code"], names.get(s["organization_code"])) for s in steps])

    route = service.create_route(
        code,
        entry.get("name", code),
        description=entry.get("description"),
        sort_order=entry.get("sort_order"),
        steps=steps,
        flow_config=layout.to_dict(),
    )
    if entry.get("active", False):
        service.activate_route(code)
    return route


def seed_database(
    db: Session, data: Optional[Dict[str, Any]] = None, settings: Optional[Settings] = None
) -> Dict[str, int]:
    """
    Seed organizations, users, memberships and routes.

    Args:
        db: Database session (flushed, not committed)
        data: Seed document; defaults to DEFAULT_SEED
        settings: Settings used when validating routes for activation

    Returns:
        Number of entries processed per section
    """
    data = DEFAULT_SEED if data is None else data

    for org in data.get("organizations", []):
        seed_organization(db, org["code"], org["name"], sort_order=org.get("sort_order"))

    for user in data.get("users", []):
        seed_user(
            db,
            user["user_id"],
            user_code=user.get("user_code"),
            user_name=user.get("user_name"),
            email=user.get("email"),
        )
        for organization_code in user.get("organizations", []):
            seed_membership(db, organization_code, user["user_id"])

    for route in data.get("routes", []):
        seed_route(db, route, settings)

    return {
        "organizations": len(data.get("organizations", [])),
        "users": len(data.get("users", [])),
        "routes": len(data.get("routes", [])),
    }


# CLI script for seeding
if __name__ == "__main__":
    import sys
    from journalflow.db.session import SessionLocal

    db = SessionLocal()
    try:
        seed_data = load_seed_file(sys.argv[1]) if len(sys.argv) > 1 else None
        counts = seed_database(db, seed_data)
        db.commit()
        for section, count in counts.items():
            print(f"  - {section}: {count}")
        print("\nSeeding complete!")

    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()
