"""
Property-based tests for CommitGuard using Hypothesis.

Covers the pieces whose correctness is a matter of invariants rather than
examples:
1. The per-commit decision (decide) over arbitrary commits and trust maps
2. Fingerprint matching: suffix of a long key ID only, never containment
3. TrustMap union algebra
4. Parsing of attacker-influenced git output (no crashes)
"""

import string

from hypothesis import assume, given, settings
from hypothesis import strategies as st

settings.register_profile("commitguard", deadline=None, print_blob=True)
settings.load_profile("commitguard")

from commitguard.verify.engine import VerificationEngine, decide
from commitguard.verify.enumerator import parse_show_output
from commitguard.verify.models import (
    CommitRecord,
    SignatureStatus,
    Verdict,
    fingerprints_match,
)
from commitguard.verify.trust_map import TrustMap


# ============================================================================
# Strategies
# ============================================================================

fingerprints = st.text(alphabet="0123456789ABCDEF", min_size=40, max_size=40)

identities = st.builds(
    "{}@{}.com".format,
    st.text(alphabet=string.ascii_lowercase, min_size=1, max_size=8),
    st.text(alphabet=string.ascii_lowercase, min_size=1, max_size=6),
)

statuses = st.sampled_from(list(SignatureStatus))
unusable_statuses = st.sampled_from([s for s in SignatureStatus if not s.is_usable])
usable_statuses = st.sampled_from([s for s in SignatureStatus if s.is_usable])

trust_maps = st.builds(
    TrustMap,
    st.dictionaries(identities, st.frozensets(fingerprints, min_size=1, max_size=3), max_size=5),
)


def commit(identity, status, fingerprint=""):
    return CommitRecord(
        sha="f" * 40,
        author_identity=identity,
        subject="change",
        signature_status=status,
        signer_fingerprint="" if status == SignatureStatus.NONE else fingerprint,
    )


# ============================================================================
# Decision properties
# ============================================================================

class TestDecisionProperties:
    @given(trust_map=trust_maps, identity=identities, status=statuses, fpr=fingerprints)
    def test_unknown_identity_always_allowed(self, trust_map, identity, status, fpr):
        assume(identity not in trust_map)
        assert decide(commit(identity, status, fpr), trust_map) == Verdict.EXTERNAL_ALLOWED

    @given(trust_map=trust_maps, status=unusable_statuses, fpr=fingerprints, data=st.data())
    def test_trusted_identity_with_unusable_signature_is_impersonation(
        self, trust_map, status, fpr, data
    ):
        assume(len(trust_map) > 0)
        identity = data.draw(st.sampled_from(sorted(trust_map)))
        assert decide(commit(identity, status, fpr), trust_map) == Verdict.IMPERSONATION_ATTEMPT

    @given(trust_map=trust_maps, status=usable_statuses, data=st.data())
    def test_authorized_key_is_verified(self, trust_map, status, data):
        assume(len(trust_map) > 0)
        identity = data.draw(st.sampled_from(sorted(trust_map)))
        fpr = data.draw(st.sampled_from(sorted(trust_map[identity])))
        assert decide(commit(identity, status, fpr), trust_map) == Verdict.TRUSTED_VERIFIED

    @given(trust_map=trust_maps, status=usable_statuses, fpr=fingerprints, data=st.data())
    def test_unauthorized_key_is_mismatch(self, trust_map, status, fpr, data):
        assume(len(trust_map) > 0)
        identity = data.draw(st.sampled_from(sorted(trust_map)))
        assume(fpr not in trust_map[identity])
        assert decide(commit(identity, status, fpr), trust_map) == Verdict.KEY_MISMATCH

    @given(trust_map=trust_maps, identity=identities, status=statuses, fpr=fingerprints)
    def test_decision_is_deterministic(self, trust_map, identity, status, fpr):
        record = commit(identity, status, fpr)
        assert decide(record, trust_map) == decide(record, trust_map)

    @given(
        trust_map=trust_maps,
        records=st.lists(st.builds(commit, identities, statuses, fingerprints), max_size=20),
        fail_on_unsigned=st.booleans(),
    )
    def test_summary_counts_add_up(self, trust_map, records, fail_on_unsigned):
        run = VerificationEngine(trust_map, fail_on_unsigned=fail_on_unsigned).verify(records)
        s = run.summary
        assert s.checked == len(records)
        assert s.checked == (
            s.trusted_verified + s.external + s.impersonation_attempts + s.key_mismatches
        )
        assert [r.commit for r in run.results] == records
        if s.key_mismatches:
            assert not run.passed


# ============================================================================
# Fingerprint matching
# ============================================================================

class TestFingerprintMatching:
    @given(fpr=fingerprints)
    def test_exact_match(self, fpr):
        assert fingerprints_match(fpr, fpr)
        assert fingerprints_match(fpr.lower(), fpr)

    @given(fpr=fingerprints, width=st.integers(min_value=16, max_value=39))
    def test_long_key_id_suffix_matches(self, fpr, width):
        assert fingerprints_match(fpr[-width:], fpr)

    @given(fpr=fingerprints, width=st.integers(min_value=1, max_value=15))
    def test_short_key_id_never_matches(self, fpr, width):
        assert not fingerprints_match(fpr[-width:], fpr)

    @given(fpr=fingerprints, start=st.integers(min_value=0, max_value=20),
           width=st.integers(min_value=16, max_value=20))
    def test_inner_substring_never_matches(self, fpr, start, width):
        part = fpr[start:start + width]
        assume(not fpr.endswith(part))
        assert not fingerprints_match(part, fpr)

    @given(a=fingerprints, b=fingerprints)
    def test_symmetric(self, a, b):
        assert fingerprints_match(a, b) == fingerprints_match(b, a)


# ============================================================================
# TrustMap algebra
# ============================================================================

class TestTrustMapUnion:
    @given(a=trust_maps, b=trust_maps)
    def test_commutative(self, a, b):
        assert a.union(b) == b.union(a)

    @given(a=trust_maps, b=trust_maps, c=trust_maps)
    def test_associative(self, a, b, c):
        assert a.union(b).union(c) == a.union(b.union(c))

    @given(a=trust_maps)
    def test_empty_is_identity(self, a):
        assert a.union(TrustMap()) == a

    @given(a=trust_maps, b=trust_maps)
    def test_union_keeps_every_binding(self, a, b):
        merged = a.union(b)
        for source in (a, b):
            for identity, fprs in source.items():
                assert fprs <= merged[identity]


# ============================================================================
# Parsing untrusted git output
# ============================================================================

class TestParseShowOutput:
    @given(output=st.text(max_size=500))
    def test_never_crashes(self, output):
        record = parse_show_output("a" * 40, output)
        assert isinstance(record.signature_status, SignatureStatus)
        if record.signature_status == SignatureStatus.NONE:
            assert record.signer_fingerprint == ""

    @given(subject=st.text(max_size=200).filter(lambda s: "\x00" not in s))
    def test_arbitrary_subject_keeps_other_fields(self, subject):
        output = "\x00".join(["G", "A" * 40, "", "", "a@x.com", subject])
        record = parse_show_output("a" * 40, output)
        assert record.author_identity == "a@x.com"
        assert record.signature_status == SignatureStatus.GOOD
