"""
Formula and Term tests.
"""

import pytest

from glmkit.core.exceptions import ValidationError
from glmkit.regression.formula import Formula, Term


class TestTerm:

    def test_single(self):
        t = Term.parse('age')
        assert t.variables == ('age',)
        assert not t.is_interaction
        assert t.name == 'age'

    def test_interaction(self):
        t = Term.parse('age : arm')
        assert t.variables == ('age', 'arm')
        assert t.is_interaction
        assert str(t) == 'age:arm'

    def test_coerce(self):
        assert Term.coerce(('a', 'b')) == Term(('a', 'b'))
        t = Term(('a',))
        assert Term.coerce(t) is t

    def test_repeated_variable(self):
        with pytest.raises(ValidationError, match="repeats"):
            Term.parse('a:a')

    def test_empty(self):
        with pytest.raises(ValidationError):
            Term(())


class TestParse:

    def test_basic(self):
        f = Formula.parse("y ~ x1 + x2 + x1:x2")
        assert f.response == 'y'
        assert [t.name for t in f.terms] == ['x1', 'x2', 'x1:x2']
        assert f.intercept
        assert f.predictor_variables == ('x1', 'x2')
        assert f.variables == ('y', 'x1', 'x2')

    @pytest.mark.parametrize("text", ["y ~ x - 1", "y ~ x + 0", "y ~ -1 + x"])
    def test_no_intercept(self, text):
        f = Formula.parse(text)
        assert not f.intercept
        assert [t.name for t in f.terms] == ['x']

    def test_intercept_only(self):
        f = Formula.parse("y ~ 1")
        assert f.terms == ()
        assert f.intercept
        assert str(f) == "y ~ 1"

    def test_str_roundtrip(self):
        f = Formula.parse("y ~ a + b - 1")
        assert Formula.parse(str(f)) == f

    def test_categorical_names(self):
        f = Formula.parse("y ~ x + arm", categorical=['arm'])
        assert f.is_categorical('arm')
        assert f.categorical == {'arm': None}

    def test_categorical_reference(self):
        f = Formula.parse("y ~ arm", categorical={'arm': 'placebo'})
        assert f.categorical['arm'] == 'placebo'

    @pytest.mark.parametrize("text", ["y x", "y ~ a ~ b", "~ x", "y ~ "])
    def test_malformed(self, text):
        with pytest.raises(ValidationError):
            Formula.parse(text)

    def test_term_removal_unsupported(self):
        with pytest.raises(ValidationError, match="only supported for the intercept"):
            Formula.parse("y ~ a - b")

    def test_unquoted_dash_suggests_backticks(self):
        with pytest.raises(ValidationError, match="backticks"):
            Formula.parse("y ~ log-dose")

    def test_backtick_names(self):
        f = Formula.parse("`y-1` ~ `log-dose` + arm + `log-dose`:arm - 1")
        assert f.response == 'y-1'
        assert f.terms[0].variables == ('log-dose',)
        assert f.terms[2].variables == ('log-dose', 'arm')
        assert f.terms[2].name == 'log-dose:arm'
        assert not f.intercept
        assert str(f) == "`y-1` ~ `log-dose` + arm + `log-dose`:arm - 1"
        assert Formula.parse(str(f)) == f

    def test_backtick_colon_in_name(self):
        t = Term.parse("`a:b`:c")
        assert t.variables == ('a:b', 'c')

    def test_unclosed_backtick(self):
        with pytest.raises(ValidationError):
            Formula.parse("y ~ `log-dose + arm")

    def test_hashable(self):
        a = Formula.parse("y ~ x + arm", categorical={'arm': 'placebo'})
        b = Formula.parse("y ~ x + arm", categorical={'arm': 'placebo'})
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1


class TestBuildValidation:

    def test_duplicate_term(self):
        with pytest.raises(ValidationError, match="more than once"):
            Formula.build('y', ['a', 'b', 'a'])

    def test_duplicate_interaction_any_order(self):
        with pytest.raises(ValidationError, match="more than once"):
            Formula.build('y', ['a:b', ('b', 'a')])

    def test_response_as_predictor(self):
        with pytest.raises(ValidationError, match="cannot also be a predictor"):
            Formula.build('y', ['x', 'y'])

    def test_categorical_response(self):
        with pytest.raises(ValidationError, match="cannot be declared categorical"):
            Formula.build('y', ['x'], categorical=['y'])

    def test_unused_categorical(self):
        with pytest.raises(ValidationError, match="not in the model"):
            Formula.build('y', ['x'], categorical=['arm'])

    def test_empty_model(self):
        with pytest.raises(ValidationError, match="no columns"):
            Formula.build('y', [], intercept=False)
