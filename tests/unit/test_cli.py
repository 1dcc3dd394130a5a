"""
Unit Tests - Report Entry Point
"""
import json

from ledger_kpi.cli import build_parser, main


class TestCLI:
    """Tests for the ledger-kpi command"""

    def test_parser_defaults(self):
        args = build_parser().parse_args(["ledger.csv"])

        assert args.format == "csv"
        assert args.top_n is None
        assert not args.export_valid

    def test_report_written(self, sample_ledger_csv, tmp_path, capsys):
        """A full run prints the tables and writes the JSON report"""
        report_path = tmp_path / "report.json"

        exit_code = main([str(sample_ledger_csv), "--json", str(report_path)])

        assert exit_code == 0
        assert "category_performance" in capsys.readouterr().out
        payload = json.loads(report_path.read_text(encoding="utf-8"))
        assert payload["summary"]["valid_rows"] == 3
        assert payload["summary"]["total_revenue"] == 1309.0

    def test_missing_file_exits_non_zero(self, tmp_path):
        assert main([str(tmp_path / "absent.csv")]) == 1

    def test_quality_checks_printed(self, sample_ledger_csv, capsys):
        """Warning-level findings are shown and the report still runs"""
        assert main([str(sample_ledger_csv)]) == 0

        out = capsys.readouterr().out
        assert "Quality checks (partial)" in out
        assert "not_null_amount" in out

    def test_blocking_quality_failure_exits_non_zero(self, tmp_path, capsys):
        """A row without a status stops the run before any KPI is built"""
        path = tmp_path / "no_status.csv"
        path.write_text(
            "Order ID,Date,Status,Fulfilment,Category,Qty,Amount,ship-state,B2B\n"
            "1,04-30-22,Shipped,Amazon,Set,1,500.0,KARNATAKA,False\n"
            "2,04-30-22,,Amazon,Set,1,400.0,KARNATAKA,False\n",
            encoding="utf-8",
        )

        assert main([str(path)]) == 1

        out = capsys.readouterr().out
        assert "Quality checks (failed)" in out
        assert "category_performance" not in out
