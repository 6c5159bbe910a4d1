"""Tests for the spatial projection."""

import math

import pytest

from codeatlas.correlation import CorrelatedModel
from codeatlas.model import AdapterResult, AdapterStatus, Category, Metric, MetricScope, Severity
from codeatlas.projection import (
    ROOT_DISTRICT,
    building_condition,
    building_height,
    district_condition,
    district_of,
    project,
    security_level,
    tertile_bands,
    traffic_level,
    unproject,
)


@pytest.fixture
def model(make_finding, make_bundle):
    findings = [
        make_finding("a", file="src/app.py", line=3, severity=Severity.HIGH, related=["src/util.py"], effort=30),
        make_finding("a", file="src/app.py", line=9, severity=Severity.CRITICAL, related=["src/util.py", "src/a.c"]),
        make_finding("a", file="src/util.py", line=1, severity=Severity.LOW, category=Category.COMPLEXITY),
        make_finding("b", file="contracts/Vault.sol", line=12, kind="reentrancy", severity=Severity.CRITICAL),
        make_finding("b", file="README.md", severity=Severity.INFO, category=Category.DOCUMENTATION),
        make_finding("b", file=None, severity=Severity.MEDIUM),
    ]
    bundle = make_bundle({"a": findings[:3], "b": findings[3:]})
    return CorrelatedModel(bundle=bundle)


class TestAttributes:
    def test_height(self):
        assert building_height(0, 0) == pytest.approx(50.0)
        assert building_height(4, 920) == pytest.approx(math.log10(1000) * 25)

    @pytest.mark.parametrize("count, condition", [(0, "excellent"), (2, "good"), (5, "fair"), (6, "poor")])
    def test_condition(self, count, condition):
        assert building_condition(count) == condition

    def test_security_and_traffic(self):
        assert [security_level(n) for n in (0, 2, 3)] == ["secure", "moderate", "at-risk"]
        assert [traffic_level(n) for n in (10, 11, 21)] == ["low", "medium", "high"]

    def test_district_of(self):
        assert district_of("src/app.py") == "src"
        assert district_of("src/deep/x.py") == "src"
        assert district_of("README.md") == ROOT_DISTRICT

    def test_district_condition_ties_go_worse(self):
        assert district_condition(["good", "poor"]) == "poor"
        assert district_condition(["good", "good", "poor"]) == "good"

    def test_tertiles(self):
        assert tertile_bands({"a": 0.0, "b": 1.0, "c": 2.0}) == {"a": "low", "b": "medium", "c": "high"}
        assert tertile_bands({}) == {}
        assert set(tertile_bands({"a": 1.0, "b": 1.0}).values()) == {"low"}


class TestProject:
    def test_buildings_only_for_files_with_findings(self, model):
        city = project(model)
        assert [b.file for b in city.buildings] == ["README.md", "contracts/Vault.sol", "src/app.py", "src/util.py"]
        assert city.building("src/a.c") is None

    def test_districts(self, model):
        city = project(model)
        assert [d.path for d in city.districts] == [ROOT_DISTRICT, "contracts", "src"]
        src = city.districts[2]
        assert src.members == ("src/app.py", "src/util.py")
        assert src.condition == "good"

    def test_building_fields(self, model):
        app = project(model).building("src/app.py")
        assert app.language == "python"
        assert app.estimated_loc == 820 // 40
        assert app.height == pytest.approx(building_height(2, app.estimated_loc))
        assert app.condition == "good"
        assert app.security == "moderate"
        assert app.traffic == "low"

    def test_loc_metric_wins_over_size(self, model):
        model.bundle.results[0].metrics.append(
            Metric(scope=MetricScope.FILE, key="loc", value=480.0, file="src/app.py")
        )
        assert project(model).building("src/app.py").estimated_loc == 480

    def test_roads_only_between_buildings(self, model):
        roads = project(model).roads
        assert [(r.source, r.target, r.weight) for r in roads] == [("src/app.py", "src/util.py", 2)]

    def test_overlays(self, model):
        overlays = {o.name: o for o in project(model).overlays}
        assert set(overlays) == {"quality", "security", "complexity", "technical-debt"}
        assert overlays["technical-debt"].values["src/app.py"] == 30.0
        assert overlays["complexity"].bands["src/util.py"] == "high"
        assert overlays["security"].values["contracts/Vault.sol"] == 1.0

    def test_deterministic(self, model):
        assert project(model) == project(model)

    def test_to_dict(self, model):
        doc = project(model).to_dict()
        assert doc["roads"] == [{"source": "src/app.py", "target": "src/util.py", "weight": 2}]
        assert doc["buildings"][0]["findings"][0]["severity"] == "info"


class TestUnproject:
    def test_round_trip(self, model):
        city = project(model)
        assert project(unproject(city)) == city

    def test_round_trip_of_empty(self, make_bundle):
        empty = project(CorrelatedModel(bundle=make_bundle({})))
        assert (empty.districts, empty.buildings, empty.roads) == ((), (), ())
        assert all(o.values == {} for o in empty.overlays)
        assert project(unproject(empty)) == empty

    def test_reconstructed_model(self, model):
        rebuilt = unproject(project(model))
        assert len(rebuilt.findings) == 5
        assert rebuilt.bundle.results[0].status == AdapterStatus.OK
        assert isinstance(rebuilt.bundle.results[0], AdapterResult)
