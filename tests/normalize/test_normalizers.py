"""Tests for the per-family finding normalizers."""

import pytest

from codeatlas.model import (
    Category,
    Confidence,
    EntityKind,
    MetricScope,
    Severity,
    Verdict,
)
from codeatlas.normalize import (
    ALL_NORMALIZERS,
    CodeClimateNormalizer,
    ContractNormalizer,
    GenericNormalizer,
    MetricsNormalizer,
    SarifNormalizer,
    SemgrepNormalizer,
    SonarQubeNormalizer,
    get_normalizer,
    parse_effort,
)
from codeatlas.paths import PathCanonicalizer


@pytest.fixture
def canon(repository):
    return PathCanonicalizer(repository.root)


@pytest.fixture
def normalize(repository, canon):
    def run(normalizer, payload, adapter="tool"):
        return normalizer.normalize(payload, adapter, repository, canon)

    return run


class TestRegistry:
    def test_families_are_unique(self):
        families = [n.family for n in ALL_NORMALIZERS]
        assert len(families) == len(set(families))

    def test_lookup(self):
        assert isinstance(get_normalizer("sarif"), SarifNormalizer)
        assert get_normalizer("nope") is None

    @pytest.mark.parametrize(
        "normalizer, native_order",
        [
            (SonarQubeNormalizer(), ["blocker", "critical", "major", "minor", "info"]),
            (CodeClimateNormalizer(), ["blocker", "critical", "major", "minor", "info"]),
            (SemgrepNormalizer(), ["error", "warning", "info"]),
            (SarifNormalizer(), ["error", "warning", "note", "none"]),
        ],
    )
    def test_severity_manifest_is_monotone(self, normalizer, native_order):
        ranks = [normalizer.severity_map[level].rank for level in native_order]
        assert ranks == sorted(ranks, reverse=True)


class TestParseEffort:
    @pytest.mark.parametrize(
        "value, minutes",
        [("1h 30min", 90), ("2d", 960), ("15min", 15), ("5m", 5), (12, 12), (None, 0), (True, 0), ("soon", 0)],
    )
    def test_values(self, value, minutes):
        assert parse_effort(value) == minutes


class TestSonarQube:
    def issue(self, **overrides):
        record = {
            "rule": "c:S2259",
            "component": "proj:src/a.c",
            "severity": "BLOCKER",
            "type": "BUG",
            "line": 42,
            "message": "Null pointer dereference",
            "effort": "10min",
        }
        record.update(overrides)
        return record

    def test_blocker_maps_to_critical(self, normalize):
        out = normalize(SonarQubeNormalizer(), {"issues": [self.issue()]}, "sonarqube")
        assert len(out.findings) == 1
        f = out.findings[0]
        assert f.severity == Severity.CRITICAL
        assert f.file == "src/a.c"
        assert f.line == 42
        assert f.category == Category.BUG
        assert f.effort_minutes == 10
        assert f.confidence == Confidence.HIGH
        assert f.adapter == "sonarqube"

    def test_text_range_wins_over_line(self, normalize):
        issue = self.issue(textRange={"startLine": 7, "endLine": 9})
        f = normalize(SonarQubeNormalizer(), {"issues": [issue]}).findings[0]
        assert (f.line, f.location.end_line) == (7, 9)

    def test_unknown_severity_is_medium_with_low_confidence(self, normalize):
        f = normalize(SonarQubeNormalizer(), {"issues": [self.issue(severity="WEIRD")]}).findings[0]
        assert f.severity == Severity.MEDIUM
        assert f.confidence == Confidence.LOW

    def test_malformed_issue_is_counted_not_raised(self, normalize):
        bad = self.issue()
        del bad["component"]
        out = normalize(SonarQubeNormalizer(), {"issues": [bad, self.issue(line=3)]})
        assert len(out.findings) == 1
        assert out.invariant_violations == 1

    def test_wrong_payload_shape(self, normalize):
        out = normalize(SonarQubeNormalizer(), ["not", "an", "object"])
        assert out.findings == []
        assert out.invariant_violations == 1


class TestCodeClimate:
    def test_issue_with_positions(self, normalize):
        payload = [
            {
                "type": "issue",
                "check_name": "argument-count",
                "description": "Too many arguments",
                "categories": ["Complexity"],
                "severity": "major",
                "remediation_points": 50000,
                "location": {
                    "path": "src/app.py",
                    "positions": {"begin": {"line": 2}, "end": {"line": 4}},
                },
            },
            {"type": "measurement", "name": "loc", "value": 10},
        ]
        out = normalize(CodeClimateNormalizer(), payload)
        assert len(out.findings) == 1
        f = out.findings[0]
        assert f.severity == Severity.HIGH
        assert f.category == Category.COMPLEXITY
        assert (f.line, f.location.end_line) == (2, 4)
        assert f.effort_minutes == 60
        assert out.invariant_violations == 0

    def test_category_with_space(self, normalize):
        payload = [
            {
                "check_name": "x",
                "categories": ["Bug Risk"],
                "location": {"path": "src/app.py", "lines": {"begin": 1, "end": 1}},
            }
        ]
        assert normalize(CodeClimateNormalizer(), payload).findings[0].category == Category.BUG

    def test_non_string_category(self, normalize):
        payload = [
            {
                "check_name": "odd",
                "categories": [7, "Style"],
                "location": {"path": "src/app.py", "lines": {"begin": 1}},
            },
            "junk",
        ]
        out = normalize(CodeClimateNormalizer(), payload)
        assert [f.category for f in out.findings] == [Category.OTHER]
        assert out.findings[0].tags == ("style",)
        assert out.invariant_violations == 1


class TestSemgrep:
    def result(self, path="src/app.py", **metadata):
        return {
            "check_id": "python.lang.security.sqli",
            "path": path,
            "start": {"line": 3},
            "end": {"line": 3},
            "extra": {"message": "SQL injection", "severity": "ERROR", "metadata": metadata},
        }

    def test_cwe_becomes_kind(self, normalize):
        payload = {"results": [self.result(cwe=["CWE-89: SQL Injection"], category="security", confidence="LOW")]}
        f = normalize(SemgrepNormalizer(), payload).findings[0]
        assert f.kind == "cwe-89"
        assert f.category_key == "security/cwe-89"
        assert f.severity == Severity.CRITICAL
        assert f.confidence == Confidence.LOW

    def test_vulnerability_class_fallback(self, normalize):
        payload = {"results": [self.result(vulnerability_class=["SQL Injection"])]}
        assert normalize(SemgrepNormalizer(), payload).findings[0].kind == "sql_injection"

    def test_paths_outside_repository_are_dropped(self, normalize):
        payload = {"results": [self.result(path="/etc/passwd"), self.result(path="../../x.py"), self.result()]}
        out = normalize(SemgrepNormalizer(), payload)
        assert len(out.findings) == 1
        assert out.dropped == 2

    def test_absolute_path_inside_repository(self, normalize, repo_root):
        payload = {"results": [self.result(path=str(repo_root / "src" / "util.py"))]}
        assert normalize(SemgrepNormalizer(), payload).findings[0].file == "src/util.py"

    def test_metadata_of_unexpected_types(self, normalize):
        payload = {
            "results": [
                {
                    "check_id": "r",
                    "path": "src/app.py",
                    "extra": {"severity": "ERROR", "metadata": {"cwe": 89, "vulnerability_class": {"a": 1}, "category": 5}},
                }
            ]
        }
        f = normalize(SemgrepNormalizer(), payload).findings[0]
        assert f.kind is None
        assert f.tags == ()
        assert f.category == Category.OTHER


class TestSarif:
    def log(self, repo_root, **result_overrides):
        result = {
            "ruleId": "js/xss",
            "message": {"text": "Cross-site scripting"},
            "locations": [
                {"physicalLocation": {"artifactLocation": {"uri": "src/app.py"}, "region": {"startLine": 3}}}
            ],
            "relatedLocations": [{"physicalLocation": {"artifactLocation": {"uri": "src/util.py"}}}],
            "codeFlows": [
                {
                    "threadFlows": [
                        {
                            "locations": [
                                {"location": {"physicalLocation": {"artifactLocation": {"uri": (repo_root / "src/util.py").as_uri()}}}},
                                {"location": {"physicalLocation": {"artifactLocation": {"uri": "src/a.c"}}}},
                                {"location": {"physicalLocation": {"artifactLocation": {"uri": "src/app.py"}}}},
                            ]
                        }
                    ]
                }
            ],
        }
        result.update(result_overrides)
        rules = [
            {"id": "js/xss", "properties": {"tags": ["security", "external/cwe/cwe-079"], "security-severity": "9.1"}},
            {"id": "js/unused", "defaultConfiguration": {"level": "note"}, "properties": {"tags": ["maintainability"]}},
        ]
        return {"version": "2.1.0", "runs": [{"tool": {"driver": {"name": "CodeQL", "rules": rules}}, "results": [result]}]}

    def test_security_severity_overrides_level(self, normalize, repo_root):
        f = normalize(SarifNormalizer(), self.log(repo_root, level="warning")).findings[0]
        assert f.severity == Severity.CRITICAL
        assert f.category == Category.SECURITY
        assert f.kind == "cwe-79"
        assert (f.file, f.line) == ("src/app.py", 3)

    def test_related_files_from_flows(self, normalize, repo_root):
        f = normalize(SarifNormalizer(), self.log(repo_root)).findings[0]
        assert f.related_files == ("src/util.py", "src/a.c")

    def test_level_falls_back_to_rule_default(self, normalize, repo_root):
        f = normalize(SarifNormalizer(), self.log(repo_root, ruleId="js/unused")).findings[0]
        assert f.severity == Severity.LOW
        assert f.category == Category.MAINTAINABILITY

    def test_result_without_rule_id(self, normalize, repo_root):
        log = self.log(repo_root)
        del log["runs"][0]["results"][0]["ruleId"]
        out = normalize(SarifNormalizer(), log)
        assert out.findings == []
        assert out.invariant_violations == 1

    def test_bad_security_severity(self, normalize, repo_root):
        log = self.log(repo_root)
        log["runs"][0]["tool"]["driver"]["rules"][0]["properties"]["security-severity"] = "high"
        assert normalize(SarifNormalizer(), log).invariant_violations == 1

    def test_non_object_result_is_dropped_alone(self, normalize, repo_root):
        log = self.log(repo_root)
        good = log["runs"][0]["results"][0]
        log["runs"][0]["results"] = [42, good, "junk", good]
        out = normalize(SarifNormalizer(), log)
        assert len(out.findings) == 2
        assert out.invariant_violations == 2

    def test_malformed_runs_counted_once_each(self, normalize, repo_root):
        log = self.log(repo_root)
        log["runs"] = ["junk", {"results": "nope"}] + log["runs"]
        out = normalize(SarifNormalizer(), log)
        assert len(out.findings) == 1
        assert out.invariant_violations == 2

    def test_malformed_flows_and_tags_are_ignored(self, normalize, repo_root):
        log = self.log(repo_root, codeFlows=[{"threadFlows": "x"}, {"threadFlows": [{"locations": 7}]}, 3])
        log["runs"][0]["tool"]["driver"]["rules"][0]["properties"]["tags"] = "security"
        f = normalize(SarifNormalizer(), log).findings[0]
        assert f.related_files == ("src/util.py",)
        assert f.tags == ()


class TestContract:
    def report(self, tool="certora", **extra):
        report = {
            "tool": tool,
            "vulnerabilities": [
                {"type": "Reentrancy", "severity": "high", "file": "contracts/Vault.sol", "line": 12, "function": "withdraw"}
            ],
            "properties": [
                {
                    "name": "solvency",
                    "type": "arithmetic verification",
                    "status": "verified",
                    "file": "contracts/Vault.sol",
                    "potential_loss": 250000,
                },
                {"name": "noDrain", "status": "bounded", "file": "contracts/Vault.sol", "contract": "Vault"},
                {"name": "broken", "status": "maybe"},
            ],
        }
        report.update(extra)
        return report

    def test_vulnerability(self, normalize):
        out = normalize(ContractNormalizer(), self.report(), "certora")
        vuln = next(f for f in out.findings if f.verification is None)
        assert vuln.kind == "reentrancy"
        assert vuln.severity == Severity.HIGH
        assert vuln.category == Category.SECURITY
        assert vuln.location.entity.kind == EntityKind.FUNCTION
        assert vuln.location.entity.name == "withdraw"

    def test_formal_verdict_is_proof(self, normalize):
        out = normalize(ContractNormalizer(), self.report(), "certora")
        solvency = next(f for f in out.findings if f.rule_key == "solvency")
        assert solvency.confidence == Confidence.PROOF
        assert solvency.verification.verdict == Verdict.VERIFIED
        assert solvency.verification.property_kind == "arithmetic_verification"
        assert solvency.verification.potential_loss == 250000.0
        assert solvency.severity == Severity.INFO

    def test_partial_stays_partial(self, normalize):
        out = normalize(ContractNormalizer(), self.report(), "certora")
        partial = next(f for f in out.findings if f.rule_key == "noDrain")
        assert partial.verification.verdict == Verdict.PARTIAL
        assert partial.confidence == Confidence.HIGH
        assert partial.severity == Severity.MEDIUM
        assert partial.location.entity.kind == EntityKind.CONTRACT

    def test_unknown_status_is_invariant_violation(self, normalize):
        out = normalize(ContractNormalizer(), self.report(), "certora")
        assert len(out.findings) == 3
        assert out.invariant_violations == 1

    def test_non_formal_tool_never_claims_proof(self, normalize):
        report = self.report(tool="slither", properties=[{"name": "p", "status": "violated", "file": "contracts/Vault.sol"}])
        out = normalize(ContractNormalizer(), report, "slither")
        assert all(f.confidence != Confidence.PROOF for f in out.findings)


class TestGeneric:
    def test_findings_and_metrics(self, normalize, finding_record):
        payload = {
            "findings": [finding_record("R1", "./src/app.py", 2, severity="high", category="security", effort="1h")],
            "metrics": [
                {"scope": "file", "key": "churn.commits", "value": 4, "unit": "commits", "file": "src/app.py"},
                {"scope": "repo", "key": "churn.total", "value": 9},
                {"scope": "file", "key": "churn.commits", "value": 1, "file": "gone.py"},
            ],
        }
        out = normalize(GenericNormalizer(), payload)
        f = out.findings[0]
        assert (f.file, f.severity, f.category, f.effort_minutes) == ("src/app.py", Severity.HIGH, Category.SECURITY, 60)
        assert [m.key for m in out.metrics] == ["churn.commits", "churn.total"]
        assert out.metrics[0].scope == MetricScope.FILE
        assert out.dropped == 1

    def test_proof_requires_verification(self, normalize, finding_record):
        payload = {"findings": [finding_record("R1", "src/a.c", 1, confidence="proof")]}
        assert normalize(GenericNormalizer(), payload).findings[0].confidence == Confidence.HIGH

    def test_repository_scope_finding(self, normalize):
        payload = {"findings": [{"rule": "R2", "message": "no license"}]}
        f = normalize(GenericNormalizer(), payload).findings[0]
        assert f.file is None
        assert f.line == 0

    def test_invalid_records(self, normalize, finding_record):
        payload = {
            "findings": [
                finding_record("R1", "src/a.c", 5, end_line=2),
                finding_record("", "src/a.c", 1),
                {"rule": "R3"},
                "garbage",
            ],
            "metrics": [{"scope": "galaxy", "key": "k", "value": 1}],
        }
        out = normalize(GenericNormalizer(), payload)
        assert out.findings == []
        assert out.invariant_violations == 5

    def test_ids_are_stable_and_distinct(self, normalize, finding_record):
        payload = {"findings": [finding_record("R1", "src/a.c", 1), finding_record("R1", "src/a.c", 1)]}
        first = [f.id for f in normalize(GenericNormalizer(), payload).findings]
        second = [f.id for f in normalize(GenericNormalizer(), payload).findings]
        assert first == second
        assert len(set(first)) == 2

    def test_malformed_metric_does_not_drop_its_neighbours(self, normalize):
        payload = {
            "metrics": [
                {"scope": "repo", "key": "a", "value": 1},
                {"scope": "repo", "key": "b", "value": True},
                {"scope": "repo", "key": "c", "value": 3.5},
            ]
        }
        out = normalize(GenericNormalizer(), payload)
        assert [m.key for m in out.metrics] == ["a", "c"]
        assert out.invariant_violations == 1


class TestMetricsOnly:
    def test_findings_are_ignored(self, normalize, finding_record):
        payload = {
            "findings": [finding_record("R1", "src/a.c", 1)],
            "metrics": [{"scope": "file", "key": "loc", "value": 12, "file": "src/a.c"}],
        }
        out = normalize(MetricsNormalizer(), payload)
        assert out.findings == []
        assert [(m.key, m.file) for m in out.metrics] == [("loc", "src/a.c")]

    def test_bad_payload(self, normalize):
        out = normalize(MetricsNormalizer(), ["not", "an", "object"])
        assert out.invariant_violations == 1
        assert get_normalizer("metrics").family == "metrics"
