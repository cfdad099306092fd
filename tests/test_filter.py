"""
Tests for the content filter and the source list filter.
"""
import pytest

from lazylog import (
    FilterMode, FilterSpec, FilterCompileError, LogLine,
    apply_filter, compile_regex, filter_names, highlight_pattern,
    match_fuzzy, regex_fallback,
)


LINES = [
    '2025-03-20 10:00:00 INFO start',
    '2025-03-20 10:00:01 ERROR fail 127.0.0.1',
    'GET https://github.com/Lifailon/lazyjournal 200',
    'a[unterminatedb',
    '',
]


class TestEmptyQuery:

    @pytest.mark.parametrize('mode', list(FilterMode))
    def test_returns_everything_in_order(self, mode):
        assert apply_filter(LINES, FilterSpec(mode, '')) == LINES

    @pytest.mark.parametrize('mode', list(FilterMode))
    def test_empty_input(self, mode):
        assert apply_filter([], FilterSpec(mode, 'x')) == []


class TestDefault:

    def test_case_insensitive_substring(self):
        out = apply_filter(LINES, FilterSpec(FilterMode.DEFAULT, 'error'))
        assert out == [LINES[1]]

    def test_works_on_log_lines(self):
        lines = [LogLine(i, raw) for i, raw in enumerate(LINES)]
        out   = apply_filter(lines, FilterSpec(FilterMode.DEFAULT, 'INFO'))
        assert [l.index for l in out] == [0]


class TestFuzzy:

    def test_subsequence(self):
        assert match_fuzzy('err', 'ERROR fail')
        assert match_fuzzy('flr', 'fail 127 error')
        assert not match_fuzzy('rre', 'error')

    def test_superset_of_substring(self):
        for query in ('start', 'fail', '127.0', 'github', '10:00'):
            plain = apply_filter(LINES, FilterSpec(FilterMode.DEFAULT, query))
            fuzzy = apply_filter(LINES, FilterSpec(FilterMode.FUZZY, query))
            assert set(plain) <= set(fuzzy)

    def test_query_longer_than_any_line(self):
        spec = FilterSpec(FilterMode.FUZZY, 'x' * 200)
        assert apply_filter(LINES, spec) == []

    def test_keeps_source_order(self):
        out = apply_filter(LINES, FilterSpec(FilterMode.FUZZY, '2025'))
        assert out == LINES[:2]

    def test_err_matches_only_error_line(self):
        out = apply_filter(LINES[:2], FilterSpec(FilterMode.FUZZY, 'err'))
        assert out == [LINES[1]]


class TestRegex:

    def test_pattern_search(self):
        out = apply_filter(LINES, FilterSpec(FilterMode.REGEX, r'\d+\.\d+\.\d+\.\d+'))
        assert out == [LINES[1]]

    def test_case_insensitive(self):
        out = apply_filter(LINES, FilterSpec(FilterMode.REGEX, '^get '))
        assert out == [LINES[2]]

    def test_invalid_pattern_falls_back_to_literal(self):
        spec = FilterSpec(FilterMode.REGEX, '[unterminated')
        assert apply_filter(LINES, spec) == ['a[unterminatedb']
        assert regex_fallback(spec)

    def test_valid_pattern_is_not_fallback(self):
        assert not regex_fallback(FilterSpec(FilterMode.REGEX, 'err(or)?'))
        assert not regex_fallback(FilterSpec(FilterMode.DEFAULT, '[x'))

    def test_compile_error_type(self):
        with pytest.raises(FilterCompileError):
            compile_regex('(')


class TestHighlightPattern:

    def test_default_is_escaped(self):
        pat = highlight_pattern(FilterSpec(FilterMode.DEFAULT, '127.0'))
        assert pat.search('x 127.0 y')
        assert not pat.search('127x0')

    def test_fuzzy_and_empty_have_none(self):
        assert highlight_pattern(FilterSpec(FilterMode.FUZZY, 'err')) is None
        assert highlight_pattern(FilterSpec(FilterMode.REGEX, '')) is None

    def test_invalid_regex_highlights_literal(self):
        pat = highlight_pattern(FilterSpec(FilterMode.REGEX, '[unterminated'))
        assert pat.search('a[unterminatedb').group(0) == '[unterminated'


class TestListFilter:

    NAMES = ['nginx.service', 'sshd.service', 'systemd-journald.service', 'cron.service']

    def test_substring(self):
        assert filter_names(self.NAMES, 'SSH') == ['sshd.service']

    def test_empty_keeps_all(self):
        assert filter_names(self.NAMES, '') == self.NAMES

    def test_not_fuzzy(self):
        # 'ngx' is a subsequence of nginx but not a substring
        assert match_fuzzy('ngx', 'nginx.service')
        assert filter_names(self.NAMES, 'ngx') == []


class TestFilterMode:

    def test_cycle_wraps(self):
        assert FilterMode.DEFAULT.next() is FilterMode.FUZZY
        assert FilterMode.REGEX.next() is FilterMode.DEFAULT
        assert FilterMode.DEFAULT.prev() is FilterMode.REGEX
