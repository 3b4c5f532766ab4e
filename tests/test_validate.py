import pytest

from flow_ix import build as b
from flow_ix import resolve as r
from flow_ix.errors import ValidationError
from flow_ix.interaction import Status
from flow_ix.validate import Accepted, Rejected, resolve_validators, run_validators

from .helpers import OFFLINE, hello_builders


def one_argument(ix, Accepted, Rejected):
    if len(ix.arguments) > 1:
        return Rejected(ix, "This transaction should only have one argument!")
    return Accepted(ix)


@pytest.mark.asyncio
async def test_all_accept(recorder):
    ix = b.build(hello_builders(recorder) + [b.validator(one_argument)])
    ix = await r.resolve(OFFLINE)(ix)
    assert ix.status is Status.VALID
    assert ix.reason is None


@pytest.mark.asyncio
async def test_first_rejection_short_circuits(recorder):
    calls = []

    def reject(ix, Accepted, Rejected):
        calls.append("reject")
        return Rejected(ix, "nope")

    def never(ix, Accepted, Rejected):  # pragma: no cover - must not run
        calls.append("never")
        return Accepted(ix)

    ix = b.build(hello_builders(recorder) + [b.validator(reject), b.validator(never)])
    with pytest.raises(ValidationError) as exc:
        await r.resolve(OFFLINE)(ix)
    assert calls == ["reject"]
    assert ix.status is Status.INVALID
    assert ix.reason == "nope"
    assert exc.value.stage == "validators"
    assert exc.value.interaction is ix


@pytest.mark.asyncio
async def test_single_argument_and_async_validators(recorder):
    seen = []

    def plain(ix):
        seen.append("plain")
        return Accepted(ix)

    async def later(ix, Accepted, Rejected):
        seen.append("async")
        return Accepted(ix)

    ix = b.build(hello_builders(recorder) + [b.validator(plain), b.validator(later)])
    ix = await r.resolve(OFFLINE)(ix)
    assert seen == ["plain", "async"]
    assert ix.status is Status.VALID


@pytest.mark.asyncio
async def test_validator_must_return_a_result():
    ix = b.build([b.validator(lambda ix: True)])
    with pytest.raises(ValidationError, match="expected Accepted or Rejected"):
        await run_validators(ix)


@pytest.mark.asyncio
async def test_raising_validator_is_a_validation_error():
    def boom(ix):
        raise KeyError("field")

    ix = b.build([b.validator(boom)])
    with pytest.raises(ValidationError, match="boom raised"):
        await resolve_validators(ix)


@pytest.mark.asyncio
async def test_run_validators_does_not_change_status():
    ix = b.build([b.validator(lambda ix: Rejected(ix, "no"))])
    result = await run_validators(ix)
    assert isinstance(result, Rejected) and result.reason == "no"
    assert ix.status is Status.BUILDING
