from xmpp_config.report import LoadReport, OutcomeKind, applied, fatal, recovered


def test_outcome_helpers_set_kind():
    assert applied("mechName", "PLAIN").kind is OutcomeKind.APPLIED
    assert recovered("packetCollectorSize", "invalid integer").kind is OutcomeKind.RECOVERED
    out = fatal("document", RuntimeError("boom"))
    assert out.is_fatal
    assert out.message == "boom"
    assert isinstance(out.error, RuntimeError)


def test_report_tracks_first_fatal_and_recovered():
    report = LoadReport("file.xml")
    assert report.ok
    report.add(applied("a"))
    report.add(recovered("b", "kept prior value"))
    first = report.add(fatal("c", ValueError("first")))
    report.add(fatal("d", ValueError("second")))

    assert not report.ok
    assert report.fatal is first
    assert [o.subject for o in report.recovered()] == ["b"]
    assert [o.subject for o in report.outcomes()] == ["a", "b", "c", "d"]


def test_report_summary_counts():
    report = LoadReport()
    report.source = "env"
    report.extend([applied("a"), applied("b"), recovered("c", "x")])
    summary = report.summary()
    assert summary["source"] == "env"
    assert summary["applied"] == "2"
    assert summary["recovered"] == "1"
    assert summary["fatal"] == ""
    assert repr(report).startswith("<LoadReport")
