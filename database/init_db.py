import os

from inventaris import create_app
from inventaris.application.auth_service import AuthService
from inventaris.db import get_db, init_db
from inventaris.infrastructure.repositories.inventory import ItemRepository


DEMO_PASSWORD = "inventaris123"

DEMO_USERS = (
    ("admin.produksi@example.com", "admin_produksi", "Admin Produksi", "MLD", ()),
    ("admin.indirect@example.com", "admin_indirect", "Admin Indirect", "QC", ()),
    ("admin.it@example.com", "admin_dept", "Admin IT", "IT", ()),
    ("spv.molding@example.com", "supervisor", "Supervisor Molding", "MLD", ()),
    ("spv.qc@example.com", "supervisor", "Supervisor QC", "QC", ()),
    ("hrga@example.com", "hrga", "HRGA", "GA", ()),
)

DEMO_ITEMS = (
    ("ATK-001", "Pulpen Hitam", "pcs", 200, 50),
    ("ATK-002", "Kertas A4", "rim", 40, 10),
    ("APD-001", "Sarung Tangan Katun", "pasang", 120, 30),
    ("APD-002", "Masker", "box", 8, 10),
    ("CLN-001", "Lap Majun", "kg", 25, 5),
)


def seed_demo(db) -> None:
    auth = AuthService()
    for email, role, name, primary, extra in DEMO_USERS:
        if auth.repository.get_by_email(db, email) is not None:
            continue
        auth.register_user(
            db,
            email=email,
            password=DEMO_PASSWORD,
            role=role,
            full_name=name,
            primary_department=primary,
            departments=extra,
        )

    items = ItemRepository()
    with db.transaction():
        for sku, name, unit, stock, minimum in DEMO_ITEMS:
            if items.get_by_sku(db, sku) is None:
                items.create(db, sku=sku, name=name, unit=unit, current_stock=stock, min_stock=minimum)


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        if os.environ.get("DEMO_SEED", "0").strip().lower() in {"1", "true", "yes", "ya"}:
            seed_demo(get_db())
    print("Database initialized.")
