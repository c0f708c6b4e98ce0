import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from chloro_wasserstein.analysis.derived import classical_mds, hierarchical_clustering
from chloro_wasserstein.core.errors import IncompleteMatrixError
from chloro_wasserstein.transport.matrix import DistanceMatrix


def _from_points(points, labels=None):
    points = np.asarray(points, dtype=float)
    labels = labels or [f"s{k}" for k in range(len(points))]
    return DistanceMatrix(values=squareform(pdist(points)), labels=list(labels))


def test_clustering_groups_close_pairs():
    dm = _from_points([[0, 0], [0.1, 0], [5, 5], [5.1, 5]], ["a1", "a2", "b1", "b2"])
    res = hierarchical_clustering(dm, method="average", n_clusters=2)
    assert res.linkage_matrix.shape == (3, 4)
    assert sorted(res.dendrogram_order) == [0, 1, 2, 3]
    assert res.clusters[0] == res.clusters[1]
    assert res.clusters[2] == res.clusters[3]
    assert res.clusters[0] != res.clusters[2]
    # Close pairs stay adjacent in leaf order
    pos = {lab: k for k, lab in enumerate(res.ordered_labels)}
    assert abs(pos["a1"] - pos["a2"]) == 1
    assert abs(pos["b1"] - pos["b2"]) == 1


@pytest.mark.parametrize("method", ["average", "complete", "single", "weighted"])
def test_clustering_methods(method):
    dm = _from_points([[0, 0], [1, 0], [3, 0]])
    res = hierarchical_clustering(dm, method=method)
    assert res.method == method
    assert res.clusters is None
    # First merge joins the closest pair at distance 1
    assert res.linkage_matrix[0, 2] == pytest.approx(1.0)


def test_cluster_cut_is_capped_at_n():
    dm = _from_points([[0, 0], [1, 0]])
    res = hierarchical_clustering(dm, n_clusters=10)
    assert sorted(res.clusters.tolist()) == [1, 2]


def test_clustering_rejects_bad_inputs():
    dm = _from_points([[0, 0], [1, 0]])
    with pytest.raises(ValueError, match="method"):
        hierarchical_clustering(dm, method="ward")
    with pytest.raises(ValueError, match="at least two"):
        hierarchical_clustering(_from_points([[0, 0]]))


def test_derived_analyses_refuse_incomplete_matrix():
    dm = DistanceMatrix.empty(["a", "b", "c"])
    dm.set_pair(1, 0, 1.0)
    with pytest.raises(IncompleteMatrixError):
        hierarchical_clustering(dm)
    with pytest.raises(IncompleteMatrixError):
        classical_mds(dm)


def test_mds_recovers_euclidean_configuration():
    pts = np.array([[0.0, 0.0], [3.0, 0.0], [0.0, 4.0], [3.0, 4.0], [1.0, 1.0]])
    dm = _from_points(pts)
    res = classical_mds(dm, n_components=2)
    assert res.coords.shape == (5, 2)
    np.testing.assert_allclose(squareform(pdist(res.coords)), dm.values, atol=1e-9)
    assert res.explained.sum() == pytest.approx(1.0)
    assert np.all(np.diff(res.eigenvalues) <= 1e-12)


def test_mds_sign_convention_is_deterministic():
    dm = _from_points([[0.0], [1.0], [5.0]])
    res = classical_mds(dm, n_components=1)
    col = res.coords[:, 0]
    assert col[np.argmax(np.abs(col))] > 0


def test_mds_pads_missing_axes():
    res = classical_mds(_from_points([[0.0, 0.0], [2.0, 0.0]]), n_components=3)
    assert res.coords.shape == (2, 3)
    assert np.allclose(res.coords[:, 1:], 0.0, atol=1e-6)
    assert abs(res.coords[0, 0] - res.coords[1, 0]) == pytest.approx(2.0)
    assert res.explained[0] == pytest.approx(1.0)


def test_mds_single_signature():
    res = classical_mds(DistanceMatrix.empty(["only"]))
    assert res.coords.tolist() == [[0.0, 0.0]]
    assert res.explained.tolist() == [0.0, 0.0]
