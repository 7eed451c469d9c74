from app.services.audience import AudienceRule, UserContext, build_memberships, has_context_access, matches


def _user(email="sam@example.com", role="student", **memberships):
    pairs = [(dimension, value) for dimension, values in memberships.items() for value in values]
    return UserContext(email=email, role=role, memberships=build_memberships(pairs))


def test_empty_rules_match_everyone():
    assert matches([], _user()) is True


def test_rules_are_or_combined():
    rules = [AudienceRule("course", audience_id="course-a"), AudienceRule("role", audience_value="student")]

    non_enrolled_student_role = _user(email="t@example.com", role="student")
    enrolled_teacher = _user(email="e@example.com", role="teacher", course=["course-a"])
    outsider = _user(email="o@example.com", role="teacher", course=["course-b"])

    assert matches(rules, non_enrolled_student_role) is True
    assert matches(rules, enrolled_teacher) is True
    assert matches(rules, outsider) is False


def test_role_match_is_case_insensitive():
    assert matches([AudienceRule("role", audience_value="Student")], _user(role="STUDENT")) is True


def test_everyone_rule_matches_any_user():
    assert matches([AudienceRule("everyone")], _user(role="")) is True


def test_user_rule_matches_email():
    rule = AudienceRule("user", audience_value="Sam@Example.com")
    assert matches([rule], _user()) is True
    assert matches([rule], _user(email="other@example.com")) is False


def test_unknown_dimension_never_matches():
    assert matches([AudienceRule("cohort", audience_id="x")], _user(course=["x"])) is False


def test_dimension_wide_rule_requires_any_membership():
    rule = AudienceRule("course")
    assert matches([rule], _user(course=["course-a"])) is True
    assert matches([rule], _user()) is False


def test_blank_type_never_matches():
    assert matches([AudienceRule("", audience_value="student")], _user()) is False


def test_context_access():
    user = _user(course=["course-a"])
    assert has_context_access(None, None, user) is True
    assert has_context_access("course", "course-a", user) is True
    assert has_context_access("course", "course-b", user) is False
    assert has_context_access("Course", "course-a", user) is True
