import unittest

from inventaris.domain.contracts import Actor
from inventaris.errors import UnauthorizedError
from inventaris.policies import ADMIN_ROLES, has_any_role, normalize_role, require_roles


def _actor(role: str) -> Actor:
    return Actor(id="u-1", role=role, primary_department="MLD")


class RolePolicyTest(unittest.TestCase):
    def test_normalize_role(self) -> None:
        self.assertEqual(normalize_role(" HRGA "), "hrga")
        self.assertEqual(normalize_role("manager"), "")
        self.assertEqual(normalize_role(None, default="supervisor"), "supervisor")

    def test_has_any_role(self) -> None:
        self.assertTrue(has_any_role("admin_dept", ADMIN_ROLES))
        self.assertFalse(has_any_role("supervisor", ADMIN_ROLES))
        self.assertFalse(has_any_role("manager", ["manager"]))

    def test_require_roles(self) -> None:
        self.assertEqual(require_roles(_actor("supervisor"), "supervisor"), "supervisor")
        with self.assertRaises(UnauthorizedError) as ctx:
            require_roles(_actor("admin_produksi"), "hrga")
        self.assertEqual(ctx.exception.http_status, 403)
        self.assertEqual(ctx.exception.payload["required_roles"], ["hrga"])
        with self.assertRaises(UnauthorizedError):
            require_roles(None, "hrga")


if __name__ == "__main__":
    unittest.main()
