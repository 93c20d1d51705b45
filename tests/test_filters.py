"""Tests for provider filter construction."""

from hypothesis import given, settings
from hypothesis import strategies as st

from vpcreaper.filters.tags import (
    CLUSTER_NAME_TAG_KEY,
    FilterGroup,
    TagFilter,
    attachment_vpc_filter,
    autoscaling_tag_filter,
    elastic_ip_name_filter,
    is_cluster_stack,
    vpc_filter,
)


def selects(tag_filter: TagFilter, tags: dict) -> bool:
    return any(group.matches_tags(tags) for group in tag_filter)


class TestFilterGroup:

    """Tests for FilterGroup."""

    def test_of_converts_underscores(self):
        group = FilterGroup.of(tag_key=["b", "a"], vpc_id="vpc-1")
        assert group.to_filters() == [
            {"Name": "tag-key", "Values": ["a", "b"]},
            {"Name": "vpc-id", "Values": ["vpc-1"]},
        ]

    def test_matches_tag_key_and_value_on_same_tag(self):
        group = FilterGroup.of(tag_key="team", tag_value="infra")

        assert group.matches_tags({"team": "infra"})
        assert not group.matches_tags({"team": "data", "owner": "infra"})

    def test_matches_named_tag(self):
        group = FilterGroup.from_pairs([("tag:Name", "web")])

        assert group.matches_tags({"Name": "web"})
        assert not group.matches_tags({"Name": "db"})

    def test_no_tag_conditions_matches(self):
        assert FilterGroup.of(vpc_id="vpc-1").matches_tags({})


class TestTagFilter:
    """Tests for TagFilter."""

    def test_empty_filter(self):
        empty = TagFilter()
        assert not empty
        assert len(empty) == 0
        assert list(empty) == []

    def test_iterates_groups_in_order(self):
        first, second = FilterGroup.of(tag_key="a"), FilterGroup.of(tag_key="b")
        tag_filter = TagFilter(groups=(first, second))
        assert list(tag_filter) == [first, second]
        assert selects(tag_filter, {"b": "1"})
        assert not selects(tag_filter, {"c": "1"})


class TestFilterHelpers:
    """Tests for the filter helper functions."""

    def test_vpc_filters(self):
        assert vpc_filter("vpc-1") == [{"Name": "vpc-id", "Values": ["vpc-1"]}]
        assert attachment_vpc_filter("vpc-1") == [{"Name": "attachment.vpc-id", "Values": ["vpc-1"]}]

    def test_elastic_ip_prefix(self):
        assert elastic_ip_name_filter("prod") == [{"Name": "tag:Name", "Values": ["prod*"]}]

    def test_autoscaling_filter_empty_without_cluster_or_tag(self):
        assert len(autoscaling_tag_filter()) == 0

    def test_autoscaling_filter_for_cluster(self):
        tag_filter = autoscaling_tag_filter("prod")

        assert len(tag_filter) == 2
        assert selects(tag_filter, {"kubernetes.io/cluster/prod": "owned"})
        assert selects(tag_filter, {"k8s.io/cluster-autoscaler/prod": "owned"})
        assert selects(tag_filter, {CLUSTER_NAME_TAG_KEY: "prod"})
        assert not selects(tag_filter, {"kubernetes.io/cluster/prod": "shared"})
        assert not selects(tag_filter, {"kubernetes.io/cluster/staging": "owned"})

    def test_autoscaling_filter_with_custom_tag(self):
        tag_filter = autoscaling_tag_filter("", "team", "infra")

        assert len(tag_filter) == 1
        assert selects(tag_filter, {"team": "infra"})

    def test_is_cluster_stack(self):
        assert is_cluster_stack({"alpha.eksctl.io/cluster-name": "prod"}, "prod")
        assert not is_cluster_stack({"alpha.eksctl.io/cluster-name": "prod"}, "staging")
        assert not is_cluster_stack({}, "prod")


@settings(max_examples=100, deadline=10000)
@given(
    tags=st.dictionaries(
        st.sampled_from(["team", "owner", "Name", "env"]),
        st.sampled_from(["infra", "data", "web"]),
        max_size=4,
    ),
    key=st.sampled_from(["team", "owner", "Name", "env"]),
    value=st.sampled_from(["infra", "data", "web"]),
)
def test_single_tag_group_matches_exactly_that_tag(tags, key, value):
    """A key/value group matches iff the mapping holds that exact pair."""
    group = FilterGroup.of(tag_key=key, tag_value=value)
    assert group.matches_tags(tags) == (tags.get(key) == value)
