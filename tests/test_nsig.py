"""Tests for the n-parameter (throttle) program derivation and interpreter."""

import pytest
from fakes import PLAYER_SCRIPT, RAW_N, THROTTLED_N

from tubefetch.core.nsig import (
    ArgRef,
    TableRef,
    ThrottleCall,
    ThrottleFunction,
    ThrottleOp,
    ThrottleOpKind,
    apply_throttle,
    classify_function,
    derive_throttle,
    find_throttle_function_name,
)
from tubefetch.errors import CipherDerivationError, ThrottleError

STANDARD_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ-_"

GENERATED_CIPHER = (
    "for(var f=64,h=[];++f-h.length-32;){switch(f){case 58:f=96;continue;case 91:f=44;break;"
    "case 65:f=47;continue;case 46:f=153;case 123:f-=58;default:h.push(String.fromCharCode(f))}}"
    "d.forEach(function(l,m,n){this.push(n[m]=h[(h.indexOf(l)-h.indexOf(this[m])+m-32+f--)%h.length])},"
    'e.split(""))'
)

LITERAL_CIPHER = (
    "var h=f.length;d.forEach(function(l,m,n){this.push(n[m]=f[(f.indexOf(l)-f.indexOf(this[m])+m+h--)"
    '%f.length])},e.split(""))'
)


def _program(op: ThrottleOp, *args) -> ThrottleFunction:
    """Single-call program: c=[op, b, *args]; c[0](c[1], c[2], ...)."""
    table = (op, TableRef.WORKING, *args)
    refs = tuple(ArgRef(i) for i in range(1, len(table)))
    return ThrottleFunction(table=table, assignments=(), calls=(ThrottleCall(0, refs),))


class TestFindFunction:
    def test_array_indirection(self):
        assert find_throttle_function_name(PLAYER_SCRIPT) == "zA"

    def test_direct_reference(self):
        script = PLAYER_SCRIPT.replace("b=Xy[0](b)", "b=zA(b)")
        assert find_throttle_function_name(script) == "zA"

    def test_error_marker_fallback(self):
        script = PLAYER_SCRIPT.replace('.get("n")', '.get("x")')
        assert find_throttle_function_name(script) == "zA"

    def test_not_found(self):
        with pytest.raises(CipherDerivationError):
            find_throttle_function_name("var a=1;")

    def test_index_out_of_range(self):
        script = PLAYER_SCRIPT.replace("Xy[0](b)", "Xy[3](b)")
        with pytest.raises(CipherDerivationError):
            find_throttle_function_name(script)


class TestClassifyFunction:
    @pytest.mark.parametrize(
        ("args", "body", "kind"),
        [
            (["d"], "d.reverse()", ThrottleOpKind.REVERSE),
            (["d"], "for(var e=d.length;e;)d.push(d.splice(--e,1)[0])", ThrottleOpKind.REVERSE),
            (["d", "e"], "d.push(e)", ThrottleOpKind.PUSH),
            (["d", "e"], "d.splice(0,e)", ThrottleOpKind.SPLICE_PREFIX),
            (
                ["d", "e"],
                "for(e=(e%d.length+d.length)%d.length;e--;)d.unshift(d.pop())",
                ThrottleOpKind.ROTATE,
            ),
            (
                ["d", "e"],
                "e=(e%d.length+d.length)%d.length;d.splice(-e).reverse().forEach(function(f){d.unshift(f)})",
                ThrottleOpKind.ROTATE,
            ),
            (["d", "e"], "e=(e%d.length+d.length)%d.length;d.splice(0,1,d.splice(e,1,d[0])[0])", ThrottleOpKind.SWAP),
            (["d", "e"], "var f=d[0];d[0]=d[e%d.length];d[e%d.length]=f", ThrottleOpKind.SWAP),
            (["d", "e"], "e=(e%d.length+d.length)%d.length;d.splice(e,1)", ThrottleOpKind.REMOVE),
        ],
    )
    def test_known_shapes(self, args, body, kind):
        assert classify_function(args, body).kind is kind

    def test_generated_alphabet(self):
        op = classify_function(["d", "e"], GENERATED_CIPHER)
        assert op.kind is ThrottleOpKind.CIPHER
        assert op.alphabet == STANDARD_ALPHABET
        assert op.counter == 96
        assert op.offset == -32
        assert op.alphabet_arg is None

    def test_literal_alphabet(self):
        op = classify_function(["d", "e", "f"], LITERAL_CIPHER)
        assert op.kind is ThrottleOpKind.CIPHER
        assert op.alphabet_arg == 2
        assert op.offset == 0

    @pytest.mark.parametrize(
        ("args", "body"),
        [
            (["d", "e"], "d.sort()"),
            (["d", "e"], "e=(e%d.length+d.length)%d.length;d.fill(e)"),
            (["d"], "d.push(1)"),
            ([], "return 1"),
        ],
    )
    def test_unknown_shapes(self, args, body):
        with pytest.raises(CipherDerivationError):
            classify_function(args, body)

    def test_unknown_loop_statement(self):
        body = GENERATED_CIPHER.replace("case 91:f=44;break;", "case 91:f*=2;break;")
        with pytest.raises(CipherDerivationError):
            classify_function(["d", "e"], body)


class TestDeriveThrottle:
    def test_fixture_program(self):
        program = derive_throttle(PLAYER_SCRIPT)
        assert len(program.table) == 10
        assert program.table[3] == "x"
        assert program.table[4] is TableRef.WORKING
        assert program.table[6] is None
        assert program.assignments == ((6, TableRef.TABLE),)
        assert [call.callee for call in program.calls] == [1, 0, 7, 8, 5, 9]
        assert program.calls[3].args == (ArgRef(4), 1)

    def test_fixture_result(self):
        assert apply_throttle(derive_throttle(PLAYER_SCRIPT), RAW_N) == THROTTLED_N

    def test_derivation_is_deterministic(self):
        assert derive_throttle(PLAYER_SCRIPT) == derive_throttle(PLAYER_SCRIPT)

    def test_call_to_non_function_slot(self):
        script = PLAYER_SCRIPT.replace("c[1](c[4]),", "c[3](c[4]),")
        with pytest.raises(CipherDerivationError):
            derive_throttle(script)

    def test_unsupported_table_element(self):
        script = PLAYER_SCRIPT.replace('-2,"x",b', '-2,"x"+a,b')
        with pytest.raises(CipherDerivationError):
            derive_throttle(script)

    def test_missing_return(self):
        script = PLAYER_SCRIPT.replace('return b.join("")}', 'return a}')
        with pytest.raises(CipherDerivationError):
            derive_throttle(script)


class TestApplyThrottle:
    @pytest.mark.parametrize(
        ("op", "args", "expected"),
        [
            (ThrottleOp(ThrottleOpKind.REVERSE), (), "edcba"),
            (ThrottleOp(ThrottleOpKind.PUSH), ("z",), "abcdez"),
            (ThrottleOp(ThrottleOpKind.SWAP), (-2,), "dbcae"),
            (ThrottleOp(ThrottleOpKind.REMOVE), (6,), "acde"),
            (ThrottleOp(ThrottleOpKind.ROTATE), (2,), "deabc"),
            (ThrottleOp(ThrottleOpKind.SPLICE_PREFIX), (2,), "cde"),
        ],
    )
    def test_primitives(self, op, args, expected):
        assert apply_throttle(_program(op, *args), "abcde") == expected

    def test_generated_alphabet_cipher(self):
        op = classify_function(["d", "e"], GENERATED_CIPHER)
        assert apply_throttle(_program(op, "b"), "ab") == "_c"

    def test_literal_alphabet_cipher(self):
        op = classify_function(["d", "e", "f"], LITERAL_CIPHER)
        assert apply_throttle(_program(op, "ba", "abc"), "abc") == "cba"

    def test_table_self_reference(self):
        # c[1] is the table itself; pushing it into the working array cannot be joined
        program = ThrottleFunction(
            table=(ThrottleOp(ThrottleOpKind.PUSH), TableRef.WORKING, TableRef.TABLE),
            assignments=(),
            calls=(ThrottleCall(0, (ArgRef(1), ArgRef(2))),),
        )
        with pytest.raises(ThrottleError):
            apply_throttle(program, "abc")

    def test_wrong_argument_types(self):
        with pytest.raises(ThrottleError):
            apply_throttle(_program(ThrottleOp(ThrottleOpKind.SWAP), "x"), "abc")

    def test_fresh_table_per_run(self):
        program = derive_throttle(PLAYER_SCRIPT)
        assert apply_throttle(program, RAW_N) == apply_throttle(program, RAW_N)

    def test_table_shrinking_below_referenced_slot(self):
        # c[5] removes slot 0 of the table itself, so c[9] no longer exists
        script = PLAYER_SCRIPT.replace("c[9](c[4],1)}", "c[5](c[6],0),c[9](c[4],1)}")
        program = derive_throttle(script)
        with pytest.raises(ThrottleError):
            apply_throttle(program, RAW_N)
