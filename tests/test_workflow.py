import pytest

from gush import InvalidWorkflow, Job, Workflow

from tests.workflows import Combine, Diamond, FetchA, FetchB, Fork, Prepare


def finish(job, success=True):
    job.mark_enqueued()
    job.mark_started()
    job.mark_finished(success)


def test_initial_jobs_of_a_fork():
    flow = Fork()
    assert [j.klass for j in flow.initial_jobs()] == ["Prepare"]


def test_edges_are_recorded_on_both_ends():
    flow = Diamond()
    a, b, c = (flow.find_job(k) for k in ("FetchA", "FetchB", "Combine"))
    assert a.outgoing == [c.name]
    assert b.outgoing == [c.name]
    assert c.incoming == [a.name, b.name]


def test_find_job_by_exact_name_or_class():
    flow = Diamond()
    combine = flow.find_job("Combine")
    assert isinstance(combine, Combine)
    assert flow.find_job(combine.name, exact=True) is combine
    assert flow.find_job("Combine", exact=True) is None
    assert flow.find_job("Nope") is None


def test_dependencies_resolve_regardless_of_order():
    class Backwards(Workflow):
        def configure(self):
            self.run(Combine, after=[FetchA, FetchB])
            self.run(FetchA)
            self.run(FetchB, before=Combine)

    flow = Backwards()
    assert sorted(j.klass for j in flow.initial_jobs()) == ["FetchA", "FetchB"]
    assert len(flow.find_job("Combine").incoming) == 2


def test_dependency_by_explicit_name():
    class Named(Workflow):
        def configure(self):
            self.run(Prepare, name="prep")
            self.run(FetchA, after="prep")

    flow = Named()
    assert flow.find_job("FetchA").incoming == ["prep"]


def test_unknown_dependency_is_rejected():
    class Broken(Workflow):
        def configure(self):
            self.run(FetchA, after=FetchB)

    with pytest.raises(InvalidWorkflow, match="FetchB"):
        Broken()


def test_cycles_are_rejected_at_build_time():
    class Loop(Workflow):
        def configure(self):
            self.run(FetchA, after=FetchB)
            self.run(FetchB, after=FetchA)

    with pytest.raises(InvalidWorkflow, match="cycle"):
        Loop()


def test_duplicate_explicit_names_are_rejected():
    class Twice(Workflow):
        def configure(self):
            self.run(FetchA, name="x")
            self.run(FetchB, name="x")

    with pytest.raises(InvalidWorkflow, match="Duplicate"):
        Twice()


def test_arguments_reach_configure():
    flow = Fork("s3://bucket")
    assert flow.arguments == ["s3://bucket"]
    assert flow.find_job("Prepare").payload == {"source": "s3://bucket"}


def test_derived_status():
    flow = Diamond()
    a, b, c = (flow.find_job(k) for k in ("FetchA", "FetchB", "Combine"))
    assert flow.status == "pending"

    a.mark_enqueued()
    assert flow.running and flow.status == "running"

    a.mark_started()
    a.mark_finished(True)
    b.mark_enqueued()
    assert flow.progress() == (1, 3)

    flow.mark_as_stopped()
    assert flow.status == "stopped"
    flow.mark_as_started()

    b.mark_started()
    b.mark_finished(False)
    assert flow.failed and not flow.running and not flow.finished
    assert flow.status == "failed"


def test_finished_when_all_jobs_succeed():
    flow = Diamond()
    for job in flow.jobs:
        finish(job)
    assert flow.finished and flow.status == "finished"


def test_levels_follow_dependencies():
    flow = Diamond()
    levels = flow.levels()
    assert len(levels) == 2
    assert levels[1] == [flow.find_job("Combine").name]


def test_from_records_keeps_stored_topology_and_status(registry):
    flow = registry.build("Diamond")
    flow.id = "wf-1"
    a = flow.find_job("FetchA")
    finish(a)
    a.output = "a"

    rebuilt = Workflow.from_records(registry, flow.to_record(), [j.to_record() for j in flow.jobs])

    assert rebuilt.id == "wf-1"
    assert rebuilt.persisted
    assert isinstance(rebuilt, Diamond)
    assert {j.name for j in rebuilt.jobs} == {j.name for j in flow.jobs}
    restored = rebuilt.find_job(a.name, exact=True)
    assert isinstance(restored, FetchA)
    assert restored.succeeded and restored.output == "a"
    # jobs come back in dependency order
    assert rebuilt.jobs[-1].klass == "Combine"


def test_from_records_falls_back_to_base_job_for_unknown_classes(registry):
    flow = registry.build("Diamond")
    flow.id = "wf-2"
    records = [j.to_record() for j in flow.jobs]
    records[0].klass = "Retired"

    rebuilt = Workflow.from_records(registry, flow.to_record(), records)
    job = rebuilt.find_job(records[0].name, exact=True)
    assert type(job) is Job
    assert job.klass == "Retired"
