import asyncio

import pytest

from flow_ix import build as b
from flow_ix.auth import Concrete, Resolvable, resolve_accounts
from flow_ix.errors import ResolutionError
from flow_ix.interaction import Roles

from .helpers import ADDR_A, ADDR_B, ADDR_C, HELLO


def _sign(request):  # pragma: no cover - not invoked during account resolution
    raise AssertionError("unexpected signing call")


@pytest.mark.asyncio
async def test_same_identity_in_all_roles_is_one_account():
    authz = b.authorization(ADDR_A, _sign, 0)
    ix = b.build([b.transaction(HELLO), b.proposer(authz), b.payer(authz), b.authorizations([authz])])
    await resolve_accounts(ix)
    assert len(ix.accounts) == 1
    (acct,) = ix.accounts.values()
    assert acct.roles == Roles(proposer=True, authorizer=True, payer=True)
    assert ix.payer == ADDR_A
    assert ix.authorizers == [ADDR_A]
    assert ix.proposal_key.address == ADDR_A and ix.proposal_key.key_id == 0


@pytest.mark.asyncio
async def test_resolving_twice_creates_no_duplicates():
    pa = b.authorization(ADDR_A, _sign, 0, sequence_number=4)
    pb = b.authorization(ADDR_B, _sign, 0)
    ix = b.build([b.proposer(pa), b.payer(pb), b.authorizations([pa, pb])])
    await resolve_accounts(ix)
    first = ix.accounts.copy()
    await resolve_accounts(ix)
    assert ix.accounts == first
    assert ix.accounts.keys() == [(ADDR_A, 0), (ADDR_B, 0)]
    assert ix.proposal_key.sequence_number == 4


@pytest.mark.asyncio
async def test_resolvable_is_invoked_once_with_the_union_of_roles():
    seen = []

    async def authz_fn(roles):
        seen.append(roles)
        return {"address": "0x" + ADDR_C, "keyId": 2, "signing_function": _sign, "sequence_number": 11}

    ix = b.build([b.proposer(authz_fn), b.payer(authz_fn), b.authorizations([authz_fn])])
    await resolve_accounts(ix)
    assert seen == [Roles(proposer=True, authorizer=True, payer=True)]
    assert ix.accounts.keys() == [(ADDR_C, 2)]
    assert ix.proposal_key.sequence_number == 11


@pytest.mark.asyncio
async def test_distinct_resolvables_run_concurrently():
    a_started = asyncio.Event()
    b_started = asyncio.Event()

    async def first(roles):
        a_started.set()
        await asyncio.wait_for(b_started.wait(), timeout=1.0)
        return Concrete(ADDR_A, 0, _sign)

    async def second(roles):
        b_started.set()
        await asyncio.wait_for(a_started.wait(), timeout=1.0)
        return Concrete(ADDR_B, 0, _sign)

    ix = b.build([b.proposer(Resolvable(first)), b.payer(Resolvable(second))])
    await resolve_accounts(ix)
    assert ix.accounts.keys() == [(ADDR_A, 0), (ADDR_B, 0)]


@pytest.mark.asyncio
async def test_failure_keeps_no_partial_accounts():
    async def broken(roles):
        raise RuntimeError("wallet offline")

    good = b.authorization(ADDR_A, _sign, 0)
    ix = b.build([b.proposer(good), b.payer(broken)])
    with pytest.raises(ResolutionError, match="wallet offline"):
        await resolve_accounts(ix)
    assert len(ix.accounts) == 0
    assert ix.proposal_key is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result",
    [
        {"address": "", "keyId": 0},
        {"address": ADDR_A},
        "f8d6e0586b0a20c7",
        {"address": "zz", "keyId": 0},
    ],
)
async def test_malformed_results_are_resolution_errors(result):
    async def fn(roles):
        return result

    ix = b.build([b.proposer(fn), b.payer(b.authorization(ADDR_B, _sign))])
    with pytest.raises(ResolutionError):
        await resolve_accounts(ix)


@pytest.mark.asyncio
async def test_proposer_and_payer_are_required():
    ix = b.build([b.payer(b.authorization(ADDR_B, _sign))])
    with pytest.raises(ResolutionError, match="proposer"):
        await resolve_accounts(ix)


@pytest.mark.asyncio
async def test_sync_resolvable_is_accepted():
    ix = b.build([
        b.proposer(lambda roles: Concrete(ADDR_A, 0, _sign)),
        b.payer(lambda roles: Concrete(ADDR_A, 0, _sign)),
    ])
    await resolve_accounts(ix)
    assert ix.accounts.get(ADDR_A, 0).roles == Roles(proposer=True, payer=True)
