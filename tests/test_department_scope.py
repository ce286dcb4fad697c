import unittest

from inventaris.db import DEFAULT_DEPARTMENTS
from inventaris.domain.contracts import Actor, Department
from inventaris.domain.scope import parse_widening, resolve_scope


DEPARTMENTS = [Department(code=code, name=name, category=category) for code, name, category in DEFAULT_DEPARTMENTS]


class DepartmentScopeTest(unittest.TestCase):
    def test_qc_supervisor_is_widened_to_qa_and_pp(self) -> None:
        actor = Actor(id="spv-qc", role="supervisor", primary_department="QC")
        scope = resolve_scope(actor, DEPARTMENTS)
        self.assertEqual(scope.codes, frozenset({"QC", "QA", "PP"}))
        self.assertFalse(scope.unrestricted)

    def test_other_supervisors_get_exactly_their_department(self) -> None:
        for code, _name, _category in DEFAULT_DEPARTMENTS:
            if code == "QC":
                continue
            actor = Actor(id=f"spv-{code}", role="supervisor", departments=frozenset({code}))
            self.assertEqual(resolve_scope(actor, DEPARTMENTS).codes, frozenset({code}), msg=code)

    def test_category_admins_follow_department_data(self) -> None:
        produksi = resolve_scope(Actor(id="a1", role="admin_produksi"), DEPARTMENTS)
        self.assertEqual(produksi.codes, frozenset({"MLD", "PLA", "PA", "PB"}))

        indirect = resolve_scope(Actor(id="a2", role="admin_indirect"), DEPARTMENTS)
        self.assertEqual(indirect.codes, frozenset({"Assembly", "PP", "QC", "QA", "PPIC"}))

        extra = DEPARTMENTS + [Department(code="WLD", name="Welding", category="production")]
        self.assertIn("WLD", resolve_scope(Actor(id="a1", role="admin_produksi"), extra).codes)

    def test_admin_dept_uses_all_assignments(self) -> None:
        actor = Actor(id="a3", role="admin_dept", departments=frozenset({"IT", "GA"}), primary_department="FAC")
        self.assertEqual(resolve_scope(actor, DEPARTMENTS).codes, frozenset({"IT", "GA", "FAC"}))

    def test_hrga_is_unrestricted(self) -> None:
        scope = resolve_scope(Actor(id="h1", role="hrga"), DEPARTMENTS)
        self.assertTrue(scope.unrestricted)
        self.assertIsNone(scope.as_filter())
        self.assertTrue(scope.contains("ANY"))

    def test_unassigned_department_roles_fail_closed(self) -> None:
        for role in ("admin_dept", "supervisor"):
            scope = resolve_scope(Actor(id="x", role=role), DEPARTMENTS)
            self.assertTrue(scope.is_empty)
            self.assertFalse(scope.contains("MLD"))
            self.assertEqual(scope.as_filter(), frozenset())

    def test_unknown_role_resolves_to_nothing(self) -> None:
        self.assertTrue(resolve_scope(Actor(id="x", role="guest", primary_department="MLD"), DEPARTMENTS).is_empty)

    def test_widening_rules_come_from_configuration(self) -> None:
        widening = parse_widening("QC=QA|PP; PLA = PA|PB ;broken")
        self.assertEqual(widening["QC"], frozenset({"QC", "QA", "PP"}))
        self.assertEqual(widening["PLA"], frozenset({"PLA", "PA", "PB"}))
        self.assertNotIn("broken", widening)

        actor = Actor(id="spv-pla", role="supervisor", primary_department="PLA")
        self.assertEqual(resolve_scope(actor, DEPARTMENTS, widening).codes, frozenset({"PLA", "PA", "PB"}))

        no_widening = resolve_scope(Actor(id="spv-qc", role="supervisor", primary_department="QC"), DEPARTMENTS, {})
        self.assertEqual(no_widening.codes, frozenset({"QC"}))


if __name__ == "__main__":
    unittest.main()
