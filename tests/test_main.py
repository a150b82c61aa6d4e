"""
Tests for the headless command-line runner.
"""

import json

from main import build_parser, main


class TestMain:
    """Test the CLI entry point."""

    def test_parser_defaults(self):
        """Test default arguments."""
        args = build_parser().parse_args([])
        assert args.population == 50
        assert args.ticks == 60
        assert args.antibiotic == []
        assert args.therapy_mode == "off"

    def test_run_prints_summary(self, capsys):
        """Test a short run prints a JSON summary."""
        code = main(["--population", "10", "--ticks", "5", "--seed", "1", "--dt", "0.05"])
        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["tick"] == 5
        assert summary["counts"]["bacterium"] >= 10
        assert 0.0 <= summary["sepsis_score"] <= 1.0

    def test_antibiotic_and_phages(self, capsys):
        """Test repeatable antibiotics and phage therapy options."""
        code = main([
            "--population", "10", "--ticks", "3", "--dt", "0.05",
            "--antibiotic", "vancomycin", "--antibiotic", "gentamicin", "--therapy-mode", "targeted",
        ])
        assert code == 0
        assert "counts" in json.loads(capsys.readouterr().out)

    def test_invalid_configuration(self, capsys):
        """Test a rejected configuration exits with status 2."""
        assert main(["--population", "-3", "--ticks", "1"]) == 2
        assert capsys.readouterr().out == ""
