#!/usr/bin/env python3
"""
Quick Start Example - Pharma Inspections

Walks through one inspection on a throwaway in-memory datastore: an inspector
records answers, a lead inspector validates, and the audit trail shows what
happened.
"""

from pharma_inspections import InspectionConfig, InspectionService
from pharma_inspections.reports import inspection_report


def main() -> None:
    """Quick demonstration of the inspection workflow."""
    print("💊 Pharma Inspections - Quick Start Example\n")

    config = InspectionConfig(
        database_url="sqlite:///:memory:", environment="development"
    )
    service = InspectionService.open(config=config)
    admin = service.login("admin", "admin123").data.token

    # 1. Accounts
    service.create_user(
        admin,
        {
            "username": "alice",
            "full_name": "Alice Martin",
            "role": "inspector",
            "password": "secret123",
        },
    )
    alice = service.login("alice", "secret123").data.token
    print("✓ Inspector 'alice' created and logged in\n")

    # 2. Inspection
    inspection_id = service.create_inspection(
        alice,
        {
            "grid_id": "officine",
            "date_inspection": "2024-03-01",
            "establishment": "Pharmacie du Centre",
            "inspection_type": "initiale",
            "inspectors": ["Alice Martin"],
        },
    ).data
    service.save_response(alice, inspection_id, 1, True)
    service.save_response(alice, inspection_id, 2, False, "Titulaire absent")
    print(f"✓ Inspection {inspection_id[:8]} started with two answers")

    # 3. Validation requires a supervisor
    denied = service.set_inspection_status(alice, inspection_id, "validated")
    print(f"  Inspector validation refused: {denied.error}")
    service.set_inspection_status(admin, inspection_id, "validated")

    inspection = service.get_inspection(admin, inspection_id).data
    responses = service.get_responses(admin, inspection_id).data
    summary = inspection_report(inspection, responses)["summary"]
    print(f"✓ Validated, compliance {summary['compliance_rate']}%\n")

    # 4. Audit trail
    for entry in reversed(service.query_audit(admin).data):
        print(f"  {entry.to_log_format()}")

    service.close()


if __name__ == "__main__":
    main()
