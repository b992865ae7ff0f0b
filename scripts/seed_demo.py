#!/usr/bin/env python3
"""
CaseTrack — Seed a demo tenant for local development.

Creates one tenant with two users and two clients (idempotent by slug),
then prints the ids to use with the board watcher.

Usage:
    python scripts/seed_demo.py
    python scripts/seed_demo.py --name "Silva & Associados" --slug silva
"""

import argparse
import sys

sys.path.insert(0, ".")


def main():
    parser = argparse.ArgumentParser(description="Seed a demo tenant")
    parser.add_argument("--name", default="Escritório Demo")
    parser.add_argument("--slug", default="demo")
    args = parser.parse_args()

    from casetrack import create_app
    from casetrack.models import db
    from casetrack.models.tenant import Client, Tenant, User

    app = create_app()
    with app.app_context():
        tenant = Tenant.query.filter_by(slug=args.slug).first()
        if tenant is None:
            tenant = Tenant(name=args.name, slug=args.slug)
            db.session.add(tenant)
            db.session.flush()
            db.session.add_all([
                User(tenant_id=tenant.id, full_name="Ana Souza", email="ana@example.com"),
                User(tenant_id=tenant.id, full_name="Bruno Lima", email="bruno@example.com"),
                Client(tenant_id=tenant.id, name="José da Silva", document_id="123.456.789-00"),
                Client(tenant_id=tenant.id, name="Maria Oliveira", document_id="987.654.321-00"),
            ])
            db.session.commit()
            print(f"  ✅ Tenant created: {tenant.name} (id={tenant.id})")
        else:
            print(f"  ⚠️  Tenant '{args.slug}' already exists (id={tenant.id})")

        for user in User.query_for_tenant(tenant.id).order_by(User.id):
            print(f"     user   {user.id:<5} {user.full_name}")
        for client in Client.query_for_tenant(tenant.id).order_by(Client.id):
            print(f"     client {client.id:<5} {client.name} ({client.document_id})")
        print(f"\n  Next step: python scripts/watch_board.py --tenant {tenant.id}")


if __name__ == "__main__":
    main()
