"""
Tests for the operator CLI.
"""

from datetime import date

from click.testing import CliRunner

from cli import DEMO_PATIENTS, cli, seed_demo_data
from preva.workflows import accounts


class TestSeed:
    def test_seeds_nurse_and_patients(self, db):
        result = seed_demo_data(today=date(2026, 3, 10))

        assert [p.name for p in result["patients"]] == ["Mary Thompson", "Robert Chen", "Linda Garcia"]
        mary = result["patients"][0]
        assert mary.risk_score == 42
        assert mary.last_visit_date == date(2026, 3, 8)
        assert mary.user_id is not None
        assert result["nurse"].name == "Nandhu Alahari"

        assert accounts.sign_in("nurse123", email="nandhu.alahari@gmail.com").ok
        for demo in DEMO_PATIENTS:
            assert accounts.sign_in("patient123", username=demo["username"]).ok

    def test_second_run_is_skipped(self, db):
        seed_demo_data()
        assert seed_demo_data() is None
        assert len(db.rows("patients")) == 3


class TestCommands:
    def test_info(self):
        result = CliRunner().invoke(cli, ["info"])
        assert result.exit_code == 0
        assert "SESSION_SECRET" in result.output

    def test_seed_command(self, db):
        result = CliRunner().invoke(cli, ["seed"])
        assert result.exit_code == 0
        assert "mary.t" in result.output
