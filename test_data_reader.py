import pytest

from data_reader import DataReader
from errors import BasicLogicError, BasicSyntaxError
from lexer import Lexer
from numlib import to_signed
from program_store import ProgramStore


@pytest.fixture
def make_reader():
    def make(*lines):
        lexer = Lexer()
        store = ProgramStore()
        for line in lines:
            store.enter(lexer.tokenize(line))
        return DataReader(store)
    return make


def read_all(reader, count):
    return [to_signed(reader.next_value()) for _ in range(count)]


def test_reads_across_data_lines(make_reader):
    reader = make_reader("10 DATA 1,-2,3", "20 PRINT 1", "30 DATA 40", "40 END")
    assert read_all(reader, 4) == [1, -2, 3, 40]
    with pytest.raises(BasicLogicError):
        reader.next_value()


def test_refills_one_line_at_a_time(make_reader):
    reader = make_reader("10 DATA 1,2", "20 DATA 3")
    reader.next_value()
    assert reader.buffer == [1, 2]
    reader.next_value()
    reader.next_value()
    assert reader.buffer == [3]


def test_restore_starts_over(make_reader):
    reader = make_reader("10 DATA 5,6")
    assert read_all(reader, 2) == [5, 6]
    reader.restore()
    assert read_all(reader, 1) == [5]


def test_data_must_start_the_line(make_reader):
    reader = make_reader("10 PRINT 1:DATA 9")
    with pytest.raises(BasicLogicError):
        reader.next_value()


def test_empty_data_line_is_skipped(make_reader):
    reader = make_reader("10 DATA", "20 DATA 7")
    assert read_all(reader, 1) == [7]


def test_malformed_data(make_reader):
    with pytest.raises(BasicSyntaxError):
        make_reader("10 DATA 1,X").next_value()
    with pytest.raises(BasicSyntaxError):
        make_reader("10 DATA 1 2").next_value()


def test_no_program_means_no_data(make_reader):
    with pytest.raises(BasicLogicError):
        make_reader().next_value()
