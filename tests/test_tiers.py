"""
Sentinel Tier Catalog Test Suite

Every tier maps to exactly one policy class, and anything outside the
configured set is rejected rather than defaulted.
"""

import unittest

from sentinel.tiers import (
    DEFAULT_POLICY,
    LOCATIONS,
    PENDING_GUIDANCE,
    DestinationType,
    Location,
    PolicyClass,
    Tier,
    TierCatalog,
    UnknownTierError,
    access_guidance,
    display_label,
    resolve_tier,
)


class TestClassification(unittest.TestCase):

    def setUp(self):
        self.catalog = TierCatalog()

    def test_default_policy_classes(self):
        self.assertEqual(self.catalog.classify(Tier.GREEN), PolicyClass.OPEN)
        self.assertEqual(self.catalog.classify(Tier.ORANGE), PolicyClass.INVITATION_GATED)
        self.assertEqual(self.catalog.classify(Tier.RED_1), PolicyClass.APPROVAL_GATED)
        self.assertEqual(self.catalog.classify(Tier.RED_2), PolicyClass.APPROVAL_GATED)

    def test_every_tier_has_one_class(self):
        for tier in Tier:
            self.assertIn(self.catalog.classify(tier), set(PolicyClass))

    def test_classify_accepts_names(self):
        self.assertEqual(self.catalog.classify("orange"), PolicyClass.INVITATION_GATED)
        self.assertEqual(self.catalog.classify(" RED_2 "), PolicyClass.APPROVAL_GATED)

    def test_unknown_tier_rejected(self):
        with self.assertRaises(UnknownTierError) as ctx:
            self.catalog.classify("PURPLE")
        self.assertEqual(ctx.exception.tier, "PURPLE")

    def test_unknown_tier_is_value_error(self):
        with self.assertRaises(ValueError):
            resolve_tier("BLUE")

    def test_non_string_rejected(self):
        with self.assertRaises(UnknownTierError):
            resolve_tier(None)

    def test_tier_outside_reduced_catalog(self):
        catalog = TierCatalog(
            policy={Tier.GREEN: PolicyClass.OPEN},
            locations=[]
        )
        self.assertEqual(catalog.tiers(), [Tier.GREEN])
        with self.assertRaises(UnknownTierError):
            catalog.resolve(Tier.RED_1)

    def test_tiers_in_restriction_order(self):
        self.assertEqual(
            self.catalog.tiers(),
            [Tier.GREEN, Tier.ORANGE, Tier.RED_1, Tier.RED_2]
        )

    def test_invalid_policy_class_rejected(self):
        with self.assertRaises(ValueError):
            TierCatalog(policy={Tier.GREEN: "OPEN"}, locations=[])

    def test_location_with_unconfigured_tier_rejected(self):
        with self.assertRaises(UnknownTierError):
            TierCatalog(
                policy={Tier.GREEN: PolicyClass.OPEN},
                locations=[Location("Lab", "Lab", DestinationType.RESTRICTED, Tier.RED_1)]
            )

    def test_default_policy_not_mutated(self):
        catalog = TierCatalog()
        catalog._policy[Tier.GREEN] = PolicyClass.APPROVAL_GATED
        self.assertEqual(DEFAULT_POLICY[Tier.GREEN], PolicyClass.OPEN)


class TestLocations(unittest.TestCase):

    def setUp(self):
        self.catalog = TierCatalog()

    def test_builtin_locations(self):
        self.assertEqual(len(self.catalog.locations()), len(LOCATIONS))
        self.assertEqual(self.catalog.tier_for_location("NLDC Building"), Tier.RED_1)
        self.assertEqual(self.catalog.tier_for_location("Cafeteria"), Tier.GREEN)

    def test_unknown_location(self):
        with self.assertRaises(KeyError):
            self.catalog.tier_for_location("Roof")

    def test_location_from_dict_defaults(self):
        location = Location.from_dict({"name": "Annex", "tier": "orange"})
        self.assertEqual(location.concealed_name, "Annex")
        self.assertEqual(location.destination_type, DestinationType.GENERAL)
        self.assertEqual(location.tier, Tier.ORANGE)

    def test_location_to_dict(self):
        d = LOCATIONS[0].to_dict()
        self.assertEqual(d["tier"], "GREEN")
        self.assertEqual(Location.from_dict(d), LOCATIONS[0])


class TestPresentation(unittest.TestCase):

    def test_visitor_sees_public_label(self):
        self.assertEqual(display_label(Tier.RED_1), "NLDC Building Access")
        self.assertEqual(display_label("GREEN"), "General Access")

    def test_staff_sees_tier_name(self):
        self.assertEqual(display_label(Tier.RED_2, privileged=True), "RED 2")

    def test_guidance(self):
        self.assertIn("Platinum Towers", access_guidance(Tier.ORANGE))
        self.assertEqual(access_guidance(Tier.RED_2, pending=True), PENDING_GUIDANCE)


if __name__ == "__main__":
    unittest.main()
