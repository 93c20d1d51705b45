"""Provider filter construction for VPC, cluster and tag scoping."""

from vpcreaper.filters.tags import FilterGroup, TagFilter, autoscaling_tag_filter

__all__ = ["FilterGroup", "TagFilter", "autoscaling_tag_filter"]
