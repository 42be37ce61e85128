# surfelmap

Building blocks for dense surfel-based RGB-D reconstruction. The centrepiece
is a non-rigid **deformation graph**: a chain of affine nodes, optimised with
sparse Gauss–Newton steps, that bends a point map and its camera poses into
place after a loop closure.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install .[test]
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `surfelmap.jacobian` | `OrderedJacobianRow` (entries appended in strictly increasing column order, `add_to` for already weighted entries) and `Jacobian`, with `Jacobian.to_csr()` giving a SciPy CSR matrix |
| `surfelmap.cholesky` | `CholeskyDecomp`: solves the normal equations `JᵀJ δ = Jᵀr` with a sparse factorisation; the fill-reducing ordering computed on the first run is reused until `free_factor()` |
| `surfelmap.odometry` | `rodrigues` (rotation vector to matrix) and `compute_update_se3` (applies a 6-vector translation/rotation step to a 4x4 transform) |
| `surfelmap.uniform` | `Uniform` and `UniformType`: a named value whose type (int, float, vec2/3/4, mat4) follows from the value |
| `surfelmap.vertex` | `Surfel` with `pack`/`unpack` for the 48-byte record (twelve little-endian float32 values), `encode_color`/`decode_color` for 24-bit RGB held in one float, and `SIZE` |
| `surfelmap.camera` | `Resolution` and `Intrinsics`; `get_resolution` and `get_intrinsics` return shared instances fixed by the first call |
| `surfelmap.img` | `Img`: a row-major image over a flat NumPy array, owning a zeroed buffer or wrapping given data, with `at(i)` and `at(row, col)` |
| `surfelmap.stopwatch` | `Stopwatch`, `current_system_time` and `get_stopwatch`: named timings in milliseconds, with `tick`/`tock`, a `measure` context manager, and packets sent over UDP |
| `surfelmap.parse` | `Parse` and `get_parse`: option lookup in an argument list and the shader and base directories |
| `surfelmap.gpu_config` | `GPUConfig.for_device` and `known_devices`: thread and block counts per GPU model |
| `surfelmap.graph` | `GraphNode`, `VertexWeightMap`, `Constraint` and the helpers `sort_by_node_id`, `connect_sequential`, `nearest_time_index`, `weight_position`, `compute_vertex_position` |
| `surfelmap.sparse_system` | `sparse_residual`, `sparse_jacobian`, `apply_delta` and `constraint_influences` for the graph's least-squares problem |
| `surfelmap.deformation_graph` | `DeformationGraph` and `OptimisationResult` |

## Deforming a map

```python
import numpy as np
from surfelmap.deformation_graph import DeformationGraph

vertices = [np.array([float(i), 0.0, 0.0]) for i in range(100)]
times = list(range(100))

graph = DeformationGraph(4, vertices)
graph.initialise_graph(vertices[::5], times[::5])
graph.append_vertices(times, len(vertices))

graph.add_constraint(99, np.array([99.0, 0.5, 0.0]))

result = graph.optimise_graph_sparse(fern_match=False, last_deform_time=0)
if result.optimised:
    graph.apply_graph_to_vertices()
print(result.error, result.mean_constraint_error)
```

Each graph node carries a 3x3 affine matrix and a translation, and is
connected to the `k` nodes nearest to it in sequence. Each point is bound to
the `k` nodes nearest to it in space among the 20 nearest in time; its
deformed position is the weighted blend of those node transforms.

Constraints pin a point either to a fixed position (`add_constraint`) or to
wherever another point ends up (`add_relative_constraint`). A new constraint
on the same point replaces the old one.

`optimise_graph_sparse` only moves nodes whose time is later than
`last_deform_time`. It runs at most three Gauss–Newton iterations. With
`fern_match=True`, a map whose mean constraint error is already below 0.06 is
left alone, and `OptimisationResult.optimised` is then `False`. The run is
timed under the name `"opt"` on the shared stopwatch.

`set_poses_seq` weights 4x4 camera poses against the graph. After it,
`apply_graph_to_poses` deforms them in place, projecting each blended
rotation back onto a true rotation with an SVD. `reset_graph` returns every
node to the identity.

## Timing code

```python
from surfelmap.stopwatch import get_stopwatch

watch = get_stopwatch()
with watch.measure("fuse"):
    ...
watch.print_all()
```

`send_all()` sends every timing as one UDP packet to `127.0.0.1:45454` (by
default). It sends only once more than 10000 microseconds have passed since
the last packet. The packet holds an int32 size, a uint64 signature, and
then each name, NUL-terminated, followed by its float32 value.

## Command-line helpers

`Parse.arg(argv, name, default)` returns the value that follows `name` in
`argv`, converted like `default`: integers and floats are read from the
value's leading digits. If `name` is not there, it returns `default`.
`Parse.shader_dir()` returns the directory given to the constructor. Without
one, it uses the `SURFELMAP_SHADER_DIR` environment variable or a `shaders`
folder next to the package, and raises `FileNotFoundError` if that directory
is missing.

## What this package does not do

There is no rendering or GPU code here, and no command to run. The package
does not draw, fuse or predict surfel maps. It does not run camera tracking
either: `odometry` holds only the rotation and transform helpers, and
`GPUConfig` is only a table of settings. The shader uniforms, surfel records
and image buffers describe data; nothing in the package sends them to a
graphics device.