"""SCA orchestration: plan scan units, resolve dependency trees, scan and enrich results."""

from depaudit.engines.sca.applicability import (
    add_third_party_dependencies_to_params,
    get_direct_dependencies_from_tree,
    should_use_all_dependencies,
)
from depaudit.engines.sca.dependency_tree import (
    create_flat_tree,
    create_flat_tree_with_types,
    get_curation_cache_folder_and_log_msg,
    get_tech_dependency_tree,
)
from depaudit.engines.sca.executor import execute_sca_scan, run_sca_scan, working_directory
from depaudit.engines.sca.impact_paths import build_impact_paths_for_scan_responses
from depaudit.engines.sca.planner import get_requested_descriptors, get_sca_scans_to_perform
from depaudit.engines.sca.resolution_config import set_resolution_repo_if_exists

__all__ = [
    "add_third_party_dependencies_to_params",
    "build_impact_paths_for_scan_responses",
    "create_flat_tree",
    "create_flat_tree_with_types",
    "execute_sca_scan",
    "get_curation_cache_folder_and_log_msg",
    "get_direct_dependencies_from_tree",
    "get_requested_descriptors",
    "get_sca_scans_to_perform",
    "get_tech_dependency_tree",
    "run_sca_scan",
    "set_resolution_repo_if_exists",
    "should_use_all_dependencies",
    "working_directory",
]
