"""Tests for the scriptpage command line."""

from scriptpage.cli import build_parser, main


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["page.npg"])
        assert args.template == "page.npg"
        assert args.context is None
        assert args.output == "-"
        assert args.work_area is None


class TestMain:
    """Tests for running the CLI end to end."""

    def test_render_to_stdout(self, write_template, capsys):
        template = write_template("Hello <?=arg['name']?>!")
        context = write_template("name: '<World>'\n", name="context.yaml")
        assert main([str(template), "-c", str(context)]) == 0
        assert capsys.readouterr().out == "Hello &lt;World&gt;!"

    def test_render_to_file(self, write_template, tmp_path):
        template = write_template("<?for n in arg:?><?=n?>,<?end?>")
        context = write_template("[1, 2, 3]", name="context.json")
        out = tmp_path / "out.txt"
        assert main([str(template), "--context", str(context), "-o", str(out)]) == 0
        assert out.read_text(encoding="utf-8") == "1,2,3,"

    def test_config_and_work_area(self, write_template, tmp_path):
        template = write_template("{{=arg}}")
        config = write_template("open_marker: '{{'\nclose_marker: '}}'\n", name="pages.yaml")
        work = tmp_path / "work"
        assert main([str(template), "--config", str(config), "--work-area", str(work)]) == 0
        assert any(work.glob("*.py"))

    def test_missing_template(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.npg")]) == 1
        assert capsys.readouterr().out == ""

    def test_broken_template(self, write_template, capsys):
        assert main([str(write_template("<? for ?>"))]) == 1
        assert capsys.readouterr().out == ""

    def test_error_while_rendering(self, write_template, capsys, caplog):
        assert main([str(write_template("a<?=undefined_name?>b"))]) == 1
        assert capsys.readouterr().out == ""
        assert "NameError" in caplog.text

    def test_config_source_location_is_not_loaded(self, write_template, tmp_path, capsys):
        template = write_template("positional")
        config = write_template(f"source_location: {tmp_path / 'missing.npg'}\n", name="pages.yaml")
        assert main([str(template), "--config", str(config)]) == 0
        assert capsys.readouterr().out == "positional"
