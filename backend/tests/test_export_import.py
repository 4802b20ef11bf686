# Overview: Pytest coverage for session export documents and idempotent import.

import copy
import pytest
from tillpos.models import CashRegisterSession, Sale
from tillpos.services import archive_service, register_service, sales_service
from tillpos.services.archive_service import DuplicateImportError, ImportIdCollisionError
from tillpos.services.persistence import NotFoundError
from tillpos.validation import ValidationError


@pytest.fixture
def exported(db_session, company_a, open_register_a, coffee, tea):
    """Export document of one closed session with a cash and a card sale."""
    sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "cash", received_amount_cents=500)
    sales_service.checkout(open_register_a, [{"product_id": tea.id, "quantity": 1}], "card")
    session = register_service.close_register(company_a.id, open_register_a.id, 10450)
    return archive_service.export_session(company_a.id, session.id)


def _wipe_session(db_session, session_id):
    db_session.query(Sale).filter_by(session_id=session_id).delete()
    db_session.query(CashRegisterSession).filter_by(id=session_id).delete()
    db_session.commit()


class TestExport:

    def test_document_shape(self, db_session, exported):
        assert exported["version"] == "1.0"
        assert exported["exportDate"].endswith("Z")
        assert exported["session"]["status"] == "closed"
        assert exported["session"]["variance_cents"] == -50
        assert len(exported["sales"]) == 2
        assert {s["payment_method"] for s in exported["sales"]} == {"cash", "card"}

    def test_filename(self, db_session, exported):
        name = archive_service.export_filename(exported)
        assert name.startswith("session_Front-Counter_")
        assert name.endswith(".json")
        assert ":" not in name

    def test_unknown_session(self, db_session, company_a):
        with pytest.raises(NotFoundError):
            archive_service.export_session(company_a.id, "missing")


class TestImport:

    def test_round_trip_into_empty_database(self, db_session, company_a, exported):
        session_id = exported["session"]["id"]
        _wipe_session(db_session, session_id)

        result = archive_service.import_session_export(company_a.id, exported)

        assert result == {"session_id": session_id, "sales_imported": 2, "sales_skipped": 0}
        session = db_session.get(CashRegisterSession, session_id)
        assert session.total_cash_cents == 500
        assert session.total_card_cents == 300
        assert session.closing_balance_cents == 10450
        assert session.variance_cents == -50

    def test_import_twice_is_rejected(self, db_session, company_a, exported):
        _wipe_session(db_session, exported["session"]["id"])
        archive_service.import_session_export(company_a.id, exported)

        with pytest.raises(DuplicateImportError):
            archive_service.import_session_export(company_a.id, exported)
        assert db_session.query(Sale).count() == 2

    def test_existing_session_is_rejected(self, db_session, company_a, exported):
        with pytest.raises(DuplicateImportError):
            archive_service.import_session_export(company_a.id, exported)

    def test_all_sales_present_is_rejected(self, db_session, company_a, exported):
        document = copy.deepcopy(exported)
        document["session"]["id"] = "00000000-0000-0000-0000-000000000001"

        with pytest.raises(DuplicateImportError):
            archive_service.import_session_export(company_a.id, document)
        assert db_session.get(CashRegisterSession, document["session"]["id"]) is None

    def test_only_new_sales_inserted(self, db_session, company_a, exported):
        session_id = exported["session"]["id"]
        kept = exported["sales"][0]["id"]
        db_session.query(Sale).filter(Sale.id != kept).delete()
        db_session.query(CashRegisterSession).filter_by(id=session_id).delete()
        db_session.commit()

        result = archive_service.import_session_export(company_a.id, exported)

        assert result["sales_imported"] == 1
        assert result["sales_skipped"] == 1
        assert db_session.query(Sale).count() == 2

    def test_duplicate_sales_in_file_counted_once(self, db_session, company_a, exported):
        _wipe_session(db_session, exported["session"]["id"])
        document = copy.deepcopy(exported)
        document["sales"].append(copy.deepcopy(document["sales"][0]))

        result = archive_service.import_session_export(company_a.id, document)

        assert result["sales_imported"] == 2

    def test_register_must_belong_to_company(self, db_session, company_b, exported):
        with pytest.raises(NotFoundError):
            archive_service.import_session_export(company_b.id, exported)

    def test_session_id_of_another_company_is_a_collision(self, db_session, company_b, register_b, exported):
        document = copy.deepcopy(exported)
        document["session"]["cash_register_id"] = register_b.id

        with pytest.raises(ImportIdCollisionError):
            archive_service.import_session_export(company_b.id, document)
        assert db_session.query(CashRegisterSession).filter_by(company_id=company_b.id).count() == 0

    def test_sale_ids_of_another_company_are_a_collision(self, db_session, company_b, register_b, exported):
        document = copy.deepcopy(exported)
        document["session"]["id"] = "0f0e0d0c-0000-4000-8000-000000000001"
        document["session"]["cash_register_id"] = register_b.id

        with pytest.raises(ImportIdCollisionError):
            archive_service.import_session_export(company_b.id, document)
        assert db_session.query(Sale).filter_by(company_id=company_b.id).count() == 0

    @pytest.mark.parametrize("mutate", [
        lambda d: d.pop("version"),
        lambda d: d.pop("exportDate"),
        lambda d: d.update(session="nope"),
        lambda d: d.update(sales={}),
        lambda d: d["session"].update(status="open"),
        lambda d: d["session"].pop("id"),
        lambda d: d["sales"][0].update(payment_method="cheque"),
        lambda d: d["sales"][0].pop("id"),
        lambda d: d["sales"][0].update(total_cents="12.50"),
        lambda d: d["session"].update(opened_at="yesterday"),
    ])
    def test_malformed_documents(self, db_session, company_a, exported, mutate):
        _wipe_session(db_session, exported["session"]["id"])
        document = copy.deepcopy(exported)
        mutate(document)

        with pytest.raises(ValidationError):
            archive_service.import_session_export(company_a.id, document)
        assert db_session.query(CashRegisterSession).count() == 0

    def test_not_a_dict(self, db_session, company_a):
        with pytest.raises(ValidationError):
            archive_service.import_session_export(company_a.id, ["nope"])
