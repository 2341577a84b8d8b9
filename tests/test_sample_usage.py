from cut_tracker import sample_usage


def test_demo_runs_end_to_end(capsys):
    sample_usage.main()
    output = capsys.readouterr().out
    assert "created: waiting" in output
    assert "Checklist: 2/2 items done" in output
    assert "After pause: paused" in output
    assert "After cutting everything: done" in output
    assert "MDF 3/4 @ Rack A: order 5" in output
    assert "job_completed" in output
