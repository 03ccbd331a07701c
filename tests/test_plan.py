import json

import pytest

from xchain.addresses import predict_addresses
from xchain.collisions import CollisionResolutionError, ResolvedAddresses
from xchain.config import DeploymentConfigError
from xchain.plan import DeploymentFailed, DualChainPlan
from xchain.script import ExecutableScript, ScriptState
from tests.conftest import CHAIN_ID_A, CHAIN_ID_B, DEPLOYER, OTHER_DEPLOYER


@pytest.fixture
def dual_plan(plan_config, get_kind, endpoint_a, endpoint_b):
    return DualChainPlan.from_config(
        plan_config,
        get_kind=get_kind,
        endpoint_a=endpoint_a,
        deployer_a=DEPLOYER,
        endpoint_b=endpoint_b,
        deployer_b=OTHER_DEPLOYER,
    )


@pytest.fixture
def shared_deployer_plan(plan_config, get_kind, endpoint_a, endpoint_b):
    return DualChainPlan.from_config(
        plan_config,
        get_kind=get_kind,
        endpoint_a=endpoint_a,
        deployer_a=DEPLOYER,
        endpoint_b=endpoint_b,
        deployer_b=DEPLOYER,
    )


def test_chain_ids_must_match_plan(plan_config, get_kind, endpoint_a, endpoint_b):
    with pytest.raises(DeploymentConfigError, match="does not match"):
        DualChainPlan.from_config(
            plan_config,
            get_kind=get_kind,
            endpoint_a=endpoint_b,
            deployer_a=DEPLOYER,
            endpoint_b=endpoint_a,
            deployer_b=DEPLOYER,
        )


def test_plan_and_build(dual_plan, endpoint_a, endpoint_b, implementation_kind):
    resolved = dual_plan.plan()
    assert resolved.burned == 0
    assert resolved.addresses_a == predict_addresses(DEPLOYER, 0, 2)
    assert resolved.addresses_b == predict_addresses(OTHER_DEPLOYER, 0, 2)

    deployment = dual_plan.build(resolved)
    implementation, root_proxy = resolved.addresses_a
    _, child_registry = resolved.addresses_b

    proxy_step = deployment.a.steps[1]
    assert proxy_step.label == "RootProxy"
    assert proxy_step.expected_address == root_proxy
    assert proxy_step.args[0] == implementation
    assert proxy_step.args[1] == implementation_kind.encode_call(
        "initialize", [DEPLOYER, child_registry]
    )

    registry_step = deployment.b.steps[1]
    assert registry_step.args == (root_proxy, 3600)
    assert registry_step.expected_address == child_registry

    # building sends nothing
    assert not endpoint_a.transactions
    assert not endpoint_b.transactions


def test_preview(dual_plan, endpoint_a, capsys):
    deployment = dual_plan.build(dual_plan.plan())
    capsys.readouterr()
    deployment.print()
    deployment.print()
    output = capsys.readouterr().out
    first, second = output[: len(output) // 2], output[len(output) // 2 :]
    assert first == second
    assert f"Chain A Deployment Actions (chain id {CHAIN_ID_A}, deployer {DEPLOYER})" in output
    assert "1/2: Deploy Implementation (Implementation)" in output
    assert "2/2: Deploy Registry (ChildRegistry)" in output
    assert not endpoint_a.transactions


def test_run_deploys_at_predicted_addresses(dual_plan, endpoint_a, endpoint_b, tmp_path):
    resolved = dual_plan.plan()
    deployment = dual_plan.build(resolved)
    results_a, results_b = deployment.run()

    assert [r.address for r in results_a] == resolved.addresses_a
    assert [r.address for r in results_b] == resolved.addresses_b
    assert deployment.a.state is ScriptState.COMPLETED
    assert deployment.b.state is ScriptState.COMPLETED

    registry_filepath = tmp_path / "registry.json"
    deployment.finalize(registry_filepath=registry_filepath, results_dir=tmp_path, verify=True)

    registry = json.loads(registry_filepath.read_text())
    assert registry[str(CHAIN_ID_A)]["RootProxy"]["address"] == resolved.addresses_a[1]
    assert registry[str(CHAIN_ID_B)]["ChildRegistry"]["args"] == [resolved.addresses_a[1], "3600"]
    assert (tmp_path / f"deployment-{CHAIN_ID_A}.json").exists()
    assert (tmp_path / f"deployment-{CHAIN_ID_B}.json").exists()
    assert endpoint_a.published == resolved.addresses_a
    assert endpoint_b.published == resolved.addresses_b


def test_shared_deployer_collisions_are_burned(shared_deployer_plan, endpoint_a, endpoint_b):
    predicted = shared_deployer_plan.predict()
    assert len(predicted.collisions) == 2
    assert not endpoint_b.transactions

    with pytest.raises(DualChainPlan.Unresolved):
        shared_deployer_plan.build(predicted)

    resolved = shared_deployer_plan.plan()
    assert resolved.burned == 2
    assert endpoint_b.get_nonce(DEPLOYER) == 2
    assert not endpoint_a.transactions

    results_a, results_b = shared_deployer_plan.build(resolved).run()
    addresses_a = {r.address for r in results_a}
    addresses_b = {r.address for r in results_b}
    assert addresses_a.isdisjoint(addresses_b)
    assert [r.address for r in results_b] == predict_addresses(DEPLOYER, 2, 2)


def test_burn_cap_from_config(plan_config, get_kind, endpoint_a, endpoint_b):
    plan_config["deployment"]["max_burn_rounds"] = 0
    dual_plan = DualChainPlan.from_config(
        plan_config,
        get_kind=get_kind,
        endpoint_a=endpoint_a,
        deployer_a=DEPLOYER,
        endpoint_b=endpoint_b,
        deployer_b=DEPLOYER,
    )
    with pytest.raises(CollisionResolutionError):
        dual_plan.plan()
    assert not endpoint_b.transactions


def test_offset_from_config(plan_config, get_kind, endpoint_a, endpoint_b):
    plan_config["chain_b"]["offset"] = 2
    dual_plan = DualChainPlan.from_config(
        plan_config,
        get_kind=get_kind,
        endpoint_a=endpoint_a,
        deployer_a=DEPLOYER,
        endpoint_b=endpoint_b,
        deployer_b=OTHER_DEPLOYER,
    )
    resolved = dual_plan.plan()
    assert resolved.burned == 0
    assert resolved.b.start_nonce == 0
    assert list(resolved.b.reserved) == predict_addresses(OTHER_DEPLOYER, 2, 2)

    # deployments start right at the current nonce
    _, results_b = dual_plan.build(resolved).run()
    assert [r.address for r in results_b] == resolved.addresses_b
    assert endpoint_b.get_nonce(OTHER_DEPLOYER) == 2
    assert not endpoint_b.noops


@pytest.mark.parametrize("concurrently", [False, True])
def test_stale_chain_b_sends_nothing_on_chain_a(dual_plan, endpoint_a, endpoint_b, concurrently):
    deployment = dual_plan.build(dual_plan.plan())
    endpoint_b.send_noop(OTHER_DEPLOYER)

    with pytest.raises(DeploymentFailed) as exc_info:
        deployment.run(concurrently=concurrently)

    assert set(exc_info.value.errors) == {"b"}
    assert isinstance(exc_info.value.errors["b"], ExecutableScript.StalePrediction)
    assert not endpoint_a.transactions
    assert not endpoint_b.deployments
    assert deployment.a.state is ScriptState.PENDING
    assert deployment.b.state is ScriptState.PENDING


def test_stale_chain_a_sends_nothing_on_chain_b(dual_plan, endpoint_a, endpoint_b):
    deployment = dual_plan.build(dual_plan.plan())
    endpoint_a.send_noop(DEPLOYER)

    with pytest.raises(DeploymentFailed, match="chain A"):
        deployment.run()

    assert not endpoint_b.transactions
    assert not endpoint_a.deployments


def test_build_rejects_foreign_predictions(dual_plan, shared_deployer_plan):
    resolved = dual_plan.plan()
    with pytest.raises(DualChainPlan.Unresolved):
        shared_deployer_plan.build(resolved)
    with pytest.raises(DualChainPlan.Unresolved):
        dual_plan.build(tuple(resolved))
    # a valid ResolvedAddresses built elsewhere for the same plan is accepted
    dual_plan.build(ResolvedAddresses(a=resolved.a, b=resolved.b))


def test_concurrent_run(dual_plan, endpoint_a, endpoint_b):
    deployment = dual_plan.build(dual_plan.plan())
    results_a, results_b = deployment.run(concurrently=True)
    assert len(results_a) == 2
    assert len(results_b) == 2
    assert len(endpoint_a.deployments) == 2
    assert len(endpoint_b.deployments) == 2


@pytest.mark.parametrize("concurrently", [False, True])
def test_failure_does_not_stop_sibling(dual_plan, endpoint_a, endpoint_b, concurrently):
    deployment = dual_plan.build(dual_plan.plan())
    endpoint_a.failing_nonces.add(1)

    with pytest.raises(DeploymentFailed) as exc_info:
        deployment.run(concurrently=concurrently)

    assert set(exc_info.value.errors) == {"a"}
    assert isinstance(exc_info.value.errors["a"], ExecutableScript.StepFailed)
    assert deployment.a.state is ScriptState.FAILED
    assert deployment.b.state is ScriptState.COMPLETED
    assert len(deployment.b.results) == 2
