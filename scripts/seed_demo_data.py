"""
Seed script: populate a development database with invoicing demo data.

What it creates:
- Default HSN codes (garments at 5%, cotton fabric at 12%, job work at 18%).
- Customers (~25) with GST numbers and payment terms.
- Invoices across the last few months; a mix of DRAFT/PENDING/SENT, some
  partially or fully paid, a few cancelled.

Run inside the API container to use the 'postgres' host:
    docker compose exec api python scripts/seed_demo_data.py --customers 25 --invoices 200

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `factory_erp.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import date, timedelta
from decimal import Decimal

from factory_erp.common.exceptions import EngineError
from factory_erp.common.money import round_money
from factory_erp.database.database import SessionLocal
from factory_erp.modules.customers.models import Customer
from factory_erp.modules.invoices.models import InvoiceStatus, PaymentMethod
from factory_erp.modules.invoices.payments import InvoicePaymentService
from factory_erp.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate, InvoiceUpdate
from factory_erp.modules.invoices.service import InvoiceService
from factory_erp.modules.taxes.service import HSNService, DEFAULT_HSN_CODES

SEED_USER = "seed-script"

CATALOG = [
    ("Round Neck T-Shirt", "6109", Decimal("180")),
    ("Polo T-Shirt", "6109", Decimal("320")),
    ("Men's Formal Trousers", "6203", Decimal("650")),
    ("Women's Kurti", "6204", Decimal("540")),
    ("Baby Romper Set", "6111", Decimal("260")),
    ("Men's Cotton Shirt", "6205", Decimal("480")),
    ("Women's Blouse", "6206", Decimal("350")),
    ("Cotton Fabric (per metre)", "5208", Decimal("95")),
    ("Stitching Charges", "9988", Decimal("40")),
]

CITIES = [
    ("Tiruppur", "Tamil Nadu", "641601"),
    ("Coimbatore", "Tamil Nadu", "641018"),
    ("Erode", "Tamil Nadu", "638001"),
    ("Bengaluru", "Karnataka", "560001"),
    ("Ludhiana", "Punjab", "141001"),
]


def pick(seq):
    return random.choice(seq)


def create_customers(db, count: int):
    customers = []
    for i in range(1, count + 1):
        code = f"CUST{i:03d}"
        existing = db.query(Customer).filter(Customer.code == code).first()
        if existing:
            customers.append(existing)
            continue
        city, state, pincode = pick(CITIES)
        customer = Customer(
            code=code,
            name=f"Demo Garments {i:03d}",
            email=f"accounts{i:03d}@demogarments.example",
            phone=f"+91 98{random.randint(10000000, 99999999)}",
            address=f"{random.randint(1, 200)} Mill Road",
            city=city,
            state=state,
            pincode=pincode,
            gst_number=f"33AAB{random.randint(1000, 9999)}F1Z{i % 10}",
            payment_terms_days=pick([15, 30, 45]),
            is_active=True,
        )
        db.add(customer)
        customers.append(customer)
    db.commit()
    return customers


def create_invoices(db, customers, invoices_count: int):
    service = InvoiceService(db)
    payments = InvoicePaymentService(db)
    created = 0
    for i in range(invoices_count):
        customer = pick(customers)
        items = []
        for _ in range(random.randint(1, 5)):
            description, hsn_code, price = pick(CATALOG)
            items.append(InvoiceItemCreate(
                description=description,
                hsn_code=hsn_code,
                quantity=Decimal(random.randint(5, 120)),
                unit_price=price,
                discount=pick([Decimal("0"), Decimal("0"), Decimal("5")]),
            ))
        issue_date = date.today() - timedelta(days=random.randint(0, 90))
        invoice_in = InvoiceCreate(
            customer_id=customer.id,
            status=pick([InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.PENDING]),
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=customer.payment_terms_days),
            items=items,
            discount_value=pick([Decimal("0"), Decimal("0"), Decimal("2.5")]),
            dispatched_through=pick(["By Road", "Courier", None]),
        )
        try:
            invoice = service.create_invoice(invoice_in, user_id=SEED_USER)

            roll = random.random()
            if roll < 0.15:
                service.update_invoice(invoice.id, InvoiceUpdate(status=InvoiceStatus.SENT), user_id=SEED_USER)
            elif roll < 0.50:
                payments.add_payment(
                    invoice.id, invoice.total_amount, pick(list(PaymentMethod)),
                    reference=f"UTR{i:06d}", user_id=SEED_USER,
                )
            elif roll < 0.70:
                payments.add_payment(
                    invoice.id, round_money(invoice.total_amount / 2), PaymentMethod.UPI,
                    reference=f"UPI{i:06d}", user_id=SEED_USER,
                )
            elif roll < 0.75:
                service.cancel_invoice(invoice.id, "Order withdrawn by customer", user_id=SEED_USER)
            created += 1
        except EngineError as e:
            print(f"  Skipped invoice {i}: {e}")
            continue
        if created % 50 == 0:
            print(f"  Invoices created: {created}")
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed invoicing demo data")
    parser.add_argument("--customers", type=int, default=25)
    parser.add_argument("--invoices", type=int, default=200)
    parser.add_argument("--seed", type=int, default=None, help="Random seed for repeatable data")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    db = SessionLocal()
    try:
        added = HSNService(db).seed_defaults()
        print(f"HSN codes added: {added} (of {len(DEFAULT_HSN_CODES)} defaults)")

        print("Creating customers...")
        customers = create_customers(db, args.customers)
        print(f"Customers: {len(customers)}")

        print("Creating invoices...")
        invoices_created = create_invoices(db, customers, args.invoices)
        print(f"Invoices created: {invoices_created}")

        stats = InvoiceService(db).get_summary_stats()
        print("\nSeed completed.")
        print(f"  Total billed:  {stats['total_amount']}")
        print(f"  Paid:          {stats['paid_amount']}")
        print(f"  Pending:       {stats['pending_amount']}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
