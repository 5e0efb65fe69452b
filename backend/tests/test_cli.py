# Overview: Pytest coverage for the flask CLI command groups.

import pytest

from repairdesk.models import Currency, Organization, TaxRate


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemInit:
    def test_bootstraps_empty_database(self, runner, db_session):
        result = runner.invoke(args=["system", "init", "--org", "Main Street Repairs", "--org-code", "MAIN"])

        assert result.exit_code == 0, result.output
        assert "DONE System initialization complete" in result.output
        org = db_session.query(Organization).one()
        assert org.code == "MAIN"
        assert db_session.query(Currency).filter(Currency.organization_id.is_(None)).count() > 0
        assert db_session.query(TaxRate).filter_by(organization_id=org.id, is_default=True).count() == 1

    def test_rerun_keeps_existing_org(self, runner, db_session, org_a):
        runner.invoke(args=["system", "init"])
        result = runner.invoke(args=["system", "init"])

        assert "Using existing organization" in result.output
        assert "SKIP Org" in result.output
        assert db_session.query(Organization).count() == 1


class TestOrgs:
    def test_create_provisions_defaults(self, runner, db_session):
        result = runner.invoke(args=[
            "orgs", "create", "--name", "Acme Repairs", "--code", "ACME", "--phone", "555-0199",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Created organization: Acme Repairs" in result.output
        org = db_session.query(Organization).filter_by(code="ACME").one()
        assert org.phone == "555-0199"
        assert db_session.query(Currency).filter_by(organization_id=org.id, is_default=True).count() == 1

    def test_duplicate_code(self, runner, db_session, org_a):
        result = runner.invoke(args=["orgs", "create", "--name", "Copy", "--code", org_a.code])

        assert "FAIL Organization with code" in result.output
        assert db_session.query(Organization).count() == 1

    def test_list(self, runner, provisioned):
        result = runner.invoke(args=["orgs", "list"])
        assert "FIXIT" in result.output
        assert "BYTE" in result.output


class TestCurrencies:
    def test_backfill_reports_each_org(self, runner, db_session, org_a, org_b):
        result = runner.invoke(args=["currencies", "backfill"])

        assert result.exit_code == 0, result.output
        assert f"PASS Org {org_a.id}" in result.output
        assert f"PASS Org {org_b.id}" in result.output

        again = runner.invoke(args=["currencies", "backfill", "--org-id", str(org_a.id)])
        assert f"SKIP Org {org_a.id}: already provisioned" in again.output

    def test_normalize_codes(self, runner, db_session):
        db_session.add(Currency(organization_id=None, code="USD_CORE", name="US Dollar", symbol="$", decimal_digits=2))
        db_session.commit()

        result = runner.invoke(args=["currencies", "normalize-codes"])

        assert "PASS Renamed 1 currencies" in result.output
        assert db_session.query(Currency).one().code == "USD"


def test_migrate_snapshots_with_nothing_to_do(runner, db_session):
    result = runner.invoke(args=["documents", "migrate-snapshots"])
    assert "PASS Converted 0 documents" in result.output
