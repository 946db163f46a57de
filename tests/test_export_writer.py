import os

import pytest
from openpyxl import load_workbook

from column_scanner import ScanState, ScanUnit
from export_writer import ExportWriter, safe_filename_part
from schema_enumerator import SchemaTriple


def unit(database, table, column, header, rows):
    return ScanUnit(SchemaTriple(database, table, column), state=ScanState.FETCHED,
                    count=len(rows), header=header, rows=rows)


def read(path):
    with open(path, encoding="utf-8", newline="") as fh:
        return fh.read()


def test_csv_header_written_once_per_file(tmp_path):
    writer = ExportWriter(str(tmp_path), "20240101_000000", "csv")
    path = writer.append(unit("shop", "customers", "name", ["id", "name"], [["1", "a"]]))
    writer.append(unit("shop", "customers", "email", ["id", "name"], [["2", "b"]]))
    writer.close()
    assert path == os.path.join(str(tmp_path), "search_shop_20240101_000000.csv")
    assert read(path) == (
        "database_name,table_name,column_name,id,name\n"
        '"shop","customers","name","1","a"\n'
        '"shop","customers","email","2","b"\n'
    )


def test_shared_file_keeps_first_table_header(tmp_path):
    writer = ExportWriter(str(tmp_path), "ts", "csv")
    path = writer.append(unit("shop", "a", "x", ["x"], [["1"]]))
    writer.append(unit("shop", "b", "y", ["y", "z", "w"], [["1", "2", "3"]]))
    lines = read(path).splitlines()
    assert lines[0] == "database_name,table_name,column_name,x"
    assert len(lines) == 3


def test_split_tables_gives_each_table_its_header(tmp_path):
    writer = ExportWriter(str(tmp_path), "ts", "csv", split_tables=True)
    a = writer.append(unit("shop", "a", "x", ["x"], [["1"]]))
    b = writer.append(unit("shop", "b", "y", ["y", "z"], [["1", "2"]]))
    assert a != b
    assert read(b).splitlines()[0] == "database_name,table_name,column_name,y,z"
    assert sorted(writer.files) == sorted([a, b])


def test_no_rows_creates_no_file(tmp_path):
    writer = ExportWriter(str(tmp_path / "out"), "ts", "csv")
    assert writer.append(unit("shop", "a", "x", ["x"], [])) is None
    assert writer.files == []
    assert not (tmp_path / "out").exists()


def test_existing_file_is_appended_without_second_header(tmp_path):
    first = ExportWriter(str(tmp_path), "ts", "csv")
    path = first.append(unit("shop", "a", "x", ["x"], [["1"]]))
    second = ExportWriter(str(tmp_path), "ts", "csv")
    second.append(unit("shop", "a", "x", ["x"], [["1"]]))
    content = read(path)
    assert content.count("database_name") == 1
    assert content.count('"shop","a","x","1"') == 2


def test_unknown_header_uses_row_data(tmp_path):
    writer = ExportWriter(str(tmp_path), "ts", "csv")
    path = writer.append(unit("shop", "a", "x", [], [["1", "2"]]))
    assert read(path).startswith("database_name,table_name,column_name,row_data\n")


def test_txt_blocks(tmp_path):
    writer = ExportWriter(str(tmp_path), "ts", "txt")
    path = writer.append(unit("shop", "a", "x", ["id", "x"], [["1", "line\nbreak"], ["2", None]]))
    assert path.endswith(".txt")
    assert read(path) == (
        "# Database: shop\n# Table: a\n# Column: x\n"
        "---\nid=1\nx=line\nbreak\n"
        "---\nid=2\nx=NULL\n"
    )


def test_xlsx_saved_on_close(tmp_path):
    writer = ExportWriter(str(tmp_path), "ts", "xlsx")
    with writer:
        path = writer.append(unit("shop", "a", "x", ["id", "x"], [["1", None]]))
        assert not os.path.exists(path)
    ws = load_workbook(path)["results"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0] == ("database_name", "table_name", "column_name", "id", "x")
    assert rows[1] == ("shop", "a", "x", "1", "NULL")


def test_xlsx_keeps_formula_like_values_as_text(tmp_path):
    with ExportWriter(str(tmp_path), "ts", "xlsx") as writer:
        path = writer.append(unit("shop", "a", "x", ["x"], [["=1+1"], ['=HYPERLINK("http://x","y")']]))
    ws = load_workbook(path)["results"]
    assert ws.cell(row=1, column=4).data_type == "s"
    cells = [ws.cell(row=r, column=4) for r in (2, 3)]
    assert [c.value for c in cells] == ["=1+1", '=HYPERLINK("http://x","y")']
    assert all(c.data_type == "s" for c in cells)


@pytest.mark.parametrize("fmt", ["csv", "xlsx"])
def test_split_tables_names_with_underscores_get_separate_files(tmp_path, fmt):
    with ExportWriter(str(tmp_path), "ts", fmt, split_tables=True) as writer:
        first = writer.append(unit("a_b", "c", "x", ["x"], [["first"]]))
        second = writer.append(unit("a", "b_c", "y", ["y"], [["second"]]))
    assert first != second
    if fmt == "csv":
        assert read(first) == 'database_name,table_name,column_name,x\n"a_b","c","x","first"\n'
        assert read(second) == 'database_name,table_name,column_name,y\n"a","b_c","y","second"\n'
    else:
        assert list(load_workbook(first)["results"].iter_rows(values_only=True))[1] == ("a_b", "c", "x", "first")
        assert list(load_workbook(second)["results"].iter_rows(values_only=True))[1] == ("a", "b_c", "y", "second")


def test_unknown_format_rejected(tmp_path):
    with pytest.raises(ValueError):
        ExportWriter(str(tmp_path), "ts", "json")


def test_safe_filename_part():
    assert safe_filename_part("shop") == "shop"
    weird = safe_filename_part("../etc/passwd")
    assert "/" not in weird
    assert safe_filename_part("a/b") != safe_filename_part("a_b")
