"""Tests for the read-only query gate."""

from __future__ import annotations

import pytest

from sourcegate.query_policy import (
    POSTGRES_POLICY,
    SQLITE_POLICY,
    QueryDeniedError,
    QueryPolicy,
    QueryVerdict,
    available_dialects,
    policy_for,
)


class TestSqlitePolicy:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM users",
            "select name from users where id = 1",
            "  \n  SeLeCt 1",
            "WITH x AS (SELECT 1) SELECT * FROM x",
            "EXPLAIN QUERY PLAN SELECT * FROM users",
            "SELECT 1;",
            "SELECT 1;   \n",
        ],
    )
    def test_allows_reads(self, sql: str) -> None:
        assert SQLITE_POLICY.classify(sql).allowed

    def test_insert_denied_and_named(self) -> None:
        verdict = SQLITE_POLICY.classify("INSERT INTO users VALUES (1)")
        assert not verdict.allowed
        assert "INSERT" in (verdict.reason or "")
        assert verdict.keyword == "INSERT"

    def test_empty_query(self) -> None:
        verdict = SQLITE_POLICY.classify("   ")
        assert not verdict.allowed
        assert verdict.reason == "Query must start with SELECT, WITH or EXPLAIN (got empty query)"

    @pytest.mark.parametrize("keyword", ["DROP", "DELETE", "UPDATE", "ATTACH", "PRAGMA", "VACUUM"])
    def test_forbidden_keyword_after_select(self, keyword: str) -> None:
        verdict = SQLITE_POLICY.classify(f"SELECT 1 FROM t WHERE 1 = 1 {keyword.lower()} x")
        assert not verdict.allowed
        assert verdict.reason == f"Query contains forbidden keyword: {keyword}"

    def test_stacked_statement_caught_by_keyword(self) -> None:
        verdict = SQLITE_POLICY.classify("SELECT * FROM users; DROP TABLE users")
        assert verdict.keyword == "DROP"

    def test_multiple_statements(self) -> None:
        verdict = SQLITE_POLICY.classify("SELECT 1; SELECT 2")
        assert not verdict.allowed
        assert verdict.reason == "Multiple statements are not allowed"

    @pytest.mark.parametrize("sql", ["SELECT * FROM updates", "SELECT created_at FROM t", "SELECT last_update FROM t"])
    def test_keywords_matched_as_whole_words(self, sql: str) -> None:
        assert SQLITE_POLICY.classify(sql).allowed

    def test_keyword_inside_string_literal_is_denied(self) -> None:
        # Word scan, not a parser: literals are not exempt.
        assert not SQLITE_POLICY.classify("SELECT 'please delete me'").allowed

    def test_classify_is_pure(self) -> None:
        sql = "SELECT * FROM users"
        assert SQLITE_POLICY.classify(sql) == SQLITE_POLICY.classify(sql)


class TestPostgresPolicy:
    def test_explain_prefix_not_allowed(self) -> None:
        verdict = POSTGRES_POLICY.classify("EXPLAIN SELECT 1")
        assert not verdict.allowed
        assert "SELECT or WITH" in (verdict.reason or "")

    @pytest.mark.parametrize("keyword", ["INTO", "COPY", "GRANT", "LOCK", "EXECUTE"])
    def test_dialect_specific_keywords(self, keyword: str) -> None:
        verdict = POSTGRES_POLICY.classify(f"SELECT * {keyword} x FROM t")
        assert verdict.keyword == keyword

    def test_select_into_denied(self) -> None:
        assert not POSTGRES_POLICY.classify("SELECT * INTO backup FROM users").allowed

    def test_pragma_only_denied_for_sqlite(self) -> None:
        assert POSTGRES_POLICY.classify("SELECT pragma FROM t").allowed
        assert not SQLITE_POLICY.classify("SELECT pragma FROM t").allowed


class TestCheck:
    def test_check_raises_with_verdict(self) -> None:
        with pytest.raises(QueryDeniedError) as exc_info:
            SQLITE_POLICY.check("DELETE FROM users")
        assert exc_info.value.verdict.keyword == "DELETE"
        assert "DELETE" in str(exc_info.value)

    def test_check_passes_reads(self) -> None:
        SQLITE_POLICY.check("SELECT 1")

    def test_custom_policy(self) -> None:
        policy = QueryPolicy(name="lax", allowed_prefixes=("select",), denied_keywords=(), forbid_multiple_statements=False)
        assert policy.classify("SELECT 1; SELECT 2").allowed


class TestVerdict:
    def test_allow_to_dict(self) -> None:
        assert QueryVerdict.allow().to_dict() == {"allowed": True}

    def test_deny_to_dict(self) -> None:
        assert QueryVerdict.deny("no", "DROP").to_dict() == {"allowed": False, "reason": "no", "keyword": "DROP"}


class TestLookup:
    def test_policy_for(self) -> None:
        assert policy_for("SQLite") is SQLITE_POLICY
        assert policy_for("postgres") is POSTGRES_POLICY

    def test_unknown_dialect(self) -> None:
        with pytest.raises(KeyError):
            policy_for("mysql")

    def test_available_dialects(self) -> None:
        assert available_dialects() == ["postgres", "sqlite"]
