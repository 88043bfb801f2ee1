#!/usr/bin/env python3
"""Tests for the conversion, analysis and validation handlers and the CLI."""

from unittest.mock import patch

import pytest
import yaml

from btm_migrator.core.config import MigratorConfig
from btm_migrator.handlers.convert import (
    analyze_map,
    calculate_complexity,
    convert_directory,
    convert_map,
    find_matching_schema,
    validate_map,
    write_report,
)
from btm_migrator.main import main, tools_main

MAP_XML = '''<?xml version="1.0" encoding="utf-8"?>
<mapsource Name="BizTalk Map" Version="2">
  <SrcTree Schema="Company.Schemas.Source">
    <SchemaReference xmlns:ns0="http://company.com/source">
      <Root TreeNodeID="s0"><FirstName TreeNodeID="s1"/><LastName TreeNodeID="s2"/></Root>
    </SchemaReference>
  </SrcTree>
  <TrgTree Schema="Company.Schemas.Target">
    <SchemaReference xmlns:ns0="http://company.com/target">
      <Person TreeNodeID="t0"><FullName TreeNodeID="t1"/></Person>
    </SchemaReference>
  </TrgTree>
  <Pages>
    <Page Name="Page 1">
      <Links>
        <Link LinkID="1" LinkFrom="s1" LinkTo="10"/>
        <Link LinkID="2" LinkFrom="s2" LinkTo="10"/>
        <Link LinkID="3" LinkFrom="10" LinkTo="t1"/>
      </Links>
      <Functoids>
        <Functoid FunctoidID="10" Functoid-FID="107">
          <Input-Parameters>
            <Parameter Type="Link" Value="1"/>
            <Parameter Type="Link" Value="2"/>
          </Input-Parameters>
        </Functoid>{extra}
      </Functoids>
    </Page>
  </Pages>
</mapsource>'''

SCHEMA_XML = '''<?xml version="1.0"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema" targetNamespace="{namespace}">
  <xs:element name="{root}"/>
</xs:schema>'''


@pytest.fixture
def map_file(tmp_path):
    """Valid map with a single concatenate functoid."""
    path = tmp_path / "Person.btm"
    path.write_text(MAP_XML.format(extra=""), encoding="utf-8")
    return path


@pytest.fixture
def schemas(tmp_path):
    """Source and target XSD files."""
    source = tmp_path / "Source.xsd"
    source.write_text(SCHEMA_XML.format(namespace="http://company.com/source", root="Root"))
    target = tmp_path / "Target.xsd"
    target.write_text(SCHEMA_XML.format(namespace="http://company.com/target", root="Person"))
    return source, target


class TestConvertMap:
    """Test suite for single map conversion."""

    def test_convert_writes_lml_next_to_map(self, map_file, schemas):
        """Test that the default output path is the map path with .lml."""
        result = convert_map(map_file, *schemas)

        output = map_file.with_suffix(".lml")
        assert result.status == "success"
        assert result.output_file == str(output)
        assert result.strategy == "tree"
        assert result.functoid_count == 1
        assert result.link_count == 3
        assert result.warnings == []

        text = output.read_text(encoding="utf-8")
        assert text.startswith("$version: 1\n")
        assert "$sourceSchema: Source.xsd" in text
        assert "  FullName: concat(/ns0:Root/ns0:FirstName, /ns0:Root/ns0:LastName)" in text

    def test_convert_to_explicit_output(self, tmp_path, map_file):
        """Test that missing parent directories of the output are created."""
        output = tmp_path / "out" / "nested" / "person.lml"

        result = convert_map(map_file, None, None, output)

        assert output.is_file()
        assert result.line_count == len(output.read_text().splitlines())

    def test_unknown_functoid_is_reported(self, tmp_path):
        """Test that unknown functoid types become warnings."""
        path = tmp_path / "Unknown.btm"
        path.write_text(MAP_XML.format(extra='<Functoid FunctoidID="99" Functoid-FID="99999"/>'))

        result = convert_map(path, None, None)

        assert result.warnings == ["Functoid 99 has unknown type 99999"]

    def test_missing_map_writes_nothing(self, tmp_path):
        """Test that a failed conversion leaves no output file."""
        output = tmp_path / "missing.lml"

        with pytest.raises(FileNotFoundError):
            convert_map(tmp_path / "missing.btm", None, None, output)

        assert not output.exists()


class TestBatchConversion:
    """Test suite for directory conversion."""

    @pytest.fixture
    def map_tree(self, tmp_path):
        maps = tmp_path / "maps"
        (maps / "sub").mkdir(parents=True)
        (maps / "a.btm").write_text(MAP_XML.format(extra=""))
        (maps / "sub" / "b.btm").write_text(MAP_XML.format(extra=""))
        (maps / "bad.btm").write_text("<mapsource><SrcTree></mapsource>")
        return maps

    def test_find_matching_schema_order(self, tmp_path):
        """Test that map-specific schema names win over generic ones."""
        (tmp_path / "Source.xsd").write_text("<x/>")
        (tmp_path / "Other.xsd").write_text("<x/>")

        assert find_matching_schema("Orders", tmp_path, "Source").name == "Source.xsd"

        (tmp_path / "OrdersSource.xsd").write_text("<x/>")
        assert find_matching_schema("Orders", tmp_path, "Source").name == "OrdersSource.xsd"

        (tmp_path / "Orders_Source.xsd").write_text("<x/>")
        assert find_matching_schema("Orders", tmp_path, "Source").name == "Orders_Source.xsd"

        assert find_matching_schema("Orders", tmp_path, "Target").name == "OrdersSource.xsd"
        assert find_matching_schema("Orders", tmp_path / "missing", "Target") is None

    def test_batch_isolates_failures(self, tmp_path, map_tree):
        """Test that one broken map does not stop the batch."""
        output_dir = tmp_path / "lml"

        report = convert_directory(map_tree, output_directory=output_dir)

        assert report.total_files == 3
        assert report.succeeded == 2
        assert report.failed == 1
        statuses = {result.map_file.rsplit("/", 1)[-1]: result.status for result in report.results}
        assert statuses == {"a.btm": "success", "bad.btm": "error", "b.btm": "success"}
        assert (output_dir / "a.lml").is_file()
        assert (output_dir / "sub" / "b.lml").is_file()

    def test_batch_non_recursive(self, map_tree):
        report = convert_directory(map_tree, recursive=False)

        assert report.total_files == 2
        assert (map_tree / "a.lml").is_file()
        assert not (map_tree / "sub" / "b.lml").exists()

    def test_batch_limit(self, map_tree):
        """Test that maps beyond the batch limit are skipped."""
        config = MigratorConfig()
        config.MAX_BATCH_FILES = 1

        report = convert_directory(map_tree, config=config)

        assert report.truncated
        assert report.skipped == 2
        assert report.succeeded == 1
        assert [r.status for r in report.results].count("skipped") == 2

    def test_batch_passes_matching_schemas(self, tmp_path, map_tree):
        """Test that schema directories are searched per map."""
        schema_dir = tmp_path / "xsd"
        schema_dir.mkdir()
        (schema_dir / "a_Source.xsd").write_text(SCHEMA_XML.format(namespace="http://company.com/source", root="Root"))

        with patch("btm_migrator.handlers.convert.convert_map") as mock_convert:
            mock_convert.return_value.output_file = "out.lml"
            report = convert_directory(map_tree, recursive=False, source_schema_dir=schema_dir)

        first_call = mock_convert.call_args_list[0]
        assert first_call.args[1] == schema_dir / "a_Source.xsd"
        assert first_call.args[2] is None
        assert report.results[0].source_schema == str(schema_dir / "a_Source.xsd")

    def test_batch_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            convert_directory(tmp_path / "missing")


class TestAnalyzeAndValidate:
    """Test suite for map analysis and validation."""

    @pytest.mark.parametrize("nodes,edges,expected", [
        (2, 3, "Low"),
        (10, 20, "Medium"),
        (40, 40, "High"),
        (60, 60, "Very High"),
    ])
    def test_complexity(self, nodes, edges, expected):
        assert calculate_complexity(nodes, edges) == expected

    def test_analyze(self, map_file):
        analysis = analyze_map(map_file, include_details=True)

        assert analysis.functoid_count == 1
        assert analysis.link_count == 3
        assert analysis.functoid_kinds == {"StringConcatenate": 1}
        assert analysis.complexity == "Low"
        assert analysis.source_namespaces["ns0"] == "http://company.com/source"
        summary = analysis.functoids[0]
        assert (summary.id, summary.input_count, summary.output_count) == ("10", 2, 1)

    def test_analyze_without_details(self, map_file):
        assert analyze_map(map_file).functoids == []

    def test_validate_clean_map(self, map_file):
        validation = validate_map(map_file)

        assert validation.status == "pass"
        assert validation.issues == []

    def test_validate_reports_orphans_and_unknown_types(self, tmp_path):
        path = tmp_path / "Orphan.btm"
        path.write_text(MAP_XML.format(extra='<Functoid FunctoidID="99" Functoid-FID="99999"/>'))

        validation = validate_map(path)

        assert validation.status == "warn"
        messages = [issue.message for issue in validation.issues]
        assert "Orphaned functoid 99 (Unknown)" in messages
        assert "Unknown functoid type 99999" in messages
        assert validation.summary == {"errors": 0, "warnings": 2}

    def test_validate_unparseable_map(self, tmp_path):
        path = tmp_path / "broken.btm"
        path.write_text("<mapsource>")

        validation = validate_map(path)

        assert validation.status == "fail"
        assert validation.issues[0].severity == "error"

    def test_write_report(self, tmp_path, map_file):
        report_path = write_report(validate_map(map_file), tmp_path / "reports" / "validation.yaml")

        with open(report_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert data["status"] == "pass"
        assert data["map_file"] == str(map_file)


class TestCommandLine:
    """Test suite for the command line entry points."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        """Keep the CLI from reconfiguring the root logger during tests."""
        with patch("btm_migrator.main.setup_logging") as mock_setup:
            yield mock_setup

    def test_main_converts(self, tmp_path, map_file, schemas, capsys):
        output = tmp_path / "cli.lml"
        report = tmp_path / "report.yaml"

        exit_code = main([str(map_file), *map(str, schemas), str(output), "--report", str(report)])

        assert exit_code == 0
        assert output.is_file()
        assert "Converted" in capsys.readouterr().out
        assert yaml.safe_load(report.read_text())["status"] == "success"

    def test_main_missing_schema(self, tmp_path, map_file, capsys):
        exit_code = main([str(map_file), str(tmp_path / "nope.xsd"), str(tmp_path / "nope2.xsd")])

        assert exit_code == 1
        assert "Error: Source schema not found" in capsys.readouterr().err

    def test_main_bad_config(self, tmp_path, map_file, schemas, capsys):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- not\n- a mapping\n")

        exit_code = main([str(map_file), *map(str, schemas), "--config", str(config_file)])

        assert exit_code == 1
        assert "could not load configuration" in capsys.readouterr().err

    def test_tools_analyze(self, map_file, capsys):
        assert tools_main(["analyze", str(map_file)]) == 0

        printed = yaml.safe_load(capsys.readouterr().out)
        assert printed["complexity"] == "Low"

    def test_tools_validate_failure_exit_code(self, tmp_path):
        path = tmp_path / "broken.btm"
        path.write_text("not xml")

        assert tools_main(["validate", str(path)]) == 1

    def test_tools_batch(self, tmp_path, map_file, capsys):
        exit_code = tools_main(["batch", str(tmp_path), "--output-dir", str(tmp_path / "lml")])

        assert exit_code == 0
        assert yaml.safe_load(capsys.readouterr().out)["succeeded"] == 1
