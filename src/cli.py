"""
Command-line interface entrypoints for the DECODE pipeline.
"""

import argparse
import logging
from pathlib import Path

from decode import __version__
from src.config import apply_overrides, load_config, save_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def extract_features(argv=None):
    """Compute the per-cell feature table for one outline/image pair."""
    parser = argparse.ArgumentParser(
        description="Extract per-cell shape, intensity and Voronoi features"
    )
    parser.add_argument("--outlines", required=True, help="Path to outline text file")
    parser.add_argument("--image", required=True, help="Path to the segmented image")
    parser.add_argument("--output-dir", required=True, help="Directory for features.csv")
    parser.add_argument(
        "--voronoi-method",
        choices=["brute", "kdtree"],
        default="brute",
        help="Nearest-centroid search for Voronoi areas",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    try:
        from src.analysis.features import build_feature_table, normalize_features, feature_matrix
        from src.data.images import load_rgb_image
        from src.data.outlines import read_outlines

        outlines, line_numbers = read_outlines(Path(args.outlines), with_line_numbers=True)
        image = load_rgb_image(Path(args.image))

        table = build_feature_table(
            outlines, image, voronoi_method=args.voronoi_method, line_numbers=line_numbers
        )

        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / "features.csv"
        table.to_csv(output_path, index=False)

        normalized = normalize_features(feature_matrix(table))

        print("\n" + "=" * 80)
        print("FEATURE EXTRACTION SUMMARY")
        print("=" * 80)
        print(f"\nCells: {len(table)}")
        print(f"Features per cell: {normalized.shape[1]}")
        if len(table) > 0:
            print(f"  Area (px²):      {table['area'].mean():.1f} ± {table['area'].std():.1f}")
            print(f"  Perimeter (px):  {table['perimeter'].mean():.1f} ± {table['perimeter'].std():.1f}")
            print(f"  Voronoi area:    {table['voronoi_area'].mean():.1f} ± {table['voronoi_area'].std():.1f}")
        print(f"\n✓ Saved features to {output_path}")
        print("=" * 80 + "\n")

        return 0

    except Exception as e:
        logging.error(f"Feature extraction failed: {e}", exc_info=True)
        return 1


def cluster_cells(argv=None):
    """Extract features and cluster cells into k groups."""
    parser = argparse.ArgumentParser(
        description="Cluster cells by normalized shape, intensity and Voronoi features"
    )
    parser.add_argument(
        "--config",
        help="Path to config YAML file (defaults are used for anything it leaves out)",
    )
    # Optional CLI overrides
    parser.add_argument("--outlines", help="Override outline file path")
    parser.add_argument("--image", help="Override image path")
    parser.add_argument("--k", type=int, help="Override number of clusters")
    parser.add_argument("--seed", type=int, help="Override random seed")
    parser.add_argument("--max-iterations", type=int, help="Override iteration cap")
    parser.add_argument("--init", choices=["sample", "uniform"], help="Override centroid initialization")
    parser.add_argument("--voronoi-method", choices=["brute", "kdtree"], help="Override Voronoi method")
    parser.add_argument("--output-dir", help="Override output directory")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    try:
        from src.analysis.quantify import process_sample, save_results

        config = load_config(Path(args.config) if args.config else None)
        config = apply_overrides(config, args)

        data_cfg = config["data"]
        if not data_cfg["outlines"] or not data_cfg["image"]:
            raise ValueError("Both data.outlines and data.image must be set")

        features_cfg = config["features"]
        clustering_cfg = config["clustering"]
        output_cfg = config["output"]
        output_dir = Path(output_cfg["output_dir"])

        print(f"\nConfiguration:")
        print(f"  Outlines: {data_cfg['outlines']}")
        print(f"  Image: {data_cfg['image']}")
        print(f"  Features: {', '.join(features_cfg['columns'])}")
        print(f"  k: {clustering_cfg['k']}")
        print(f"  Init: {clustering_cfg['init']}")
        print(f"  Max iterations: {clustering_cfg['max_iterations']}")
        print(f"  Seed: {clustering_cfg['seed']}")
        print(f"  Output directory: {output_dir}")

        features, normalized, result, hulls, image = process_sample(
            Path(data_cfg["outlines"]),
            Path(data_cfg["image"]),
            k=int(clustering_cfg["k"]),
            columns=features_cfg["columns"],
            voronoi_method=features_cfg["voronoi_method"],
            strict_intensity=bool(features_cfg["strict_intensity"]),
            init=clustering_cfg["init"],
            max_iterations=int(clustering_cfg["max_iterations"]),
            tol=float(clustering_cfg["tol"]),
            seed=clustering_cfg["seed"],
        )

        paths = save_results(
            features,
            normalized,
            result,
            hulls,
            image.shape,
            output_dir,
            image_name=output_cfg["image_name"],
            columns=features_cfg["columns"],
            plots=bool(output_cfg["plots"]),
            seed=clustering_cfg["seed"],
        )

        # Save config snapshot for reproducibility
        save_config(config, output_dir / "config.yaml")

        print("\n" + "=" * 80)
        print("CELL CLUSTERING SUMMARY")
        print("=" * 80)
        print(f"\nCells: {len(features)}")
        print(f"Iterations: {result.n_iter} ({result.state.value})")
        print(f"Inertia: {result.inertia:.4f}")
        print("\nCluster sizes:")
        for cluster_id, size in enumerate(result.cluster_sizes()):
            print(f"  Cluster {cluster_id:2d}: {size} cells")
        print(f"\nOutputs saved to: {output_dir}")
        for name, path in paths.items():
            if path is not None:
                print(f"  - {name}: {path}")
        print("=" * 80 + "\n")

        return 0

    except Exception as e:
        logging.error(f"Cell clustering failed: {e}", exc_info=True)
        return 1


def cluster_pixels(argv=None):
    """Cluster the pixel coordinates of an image and save a label image."""
    parser = argparse.ArgumentParser(
        description="Cluster image pixels by position and render the clusters"
    )
    parser.add_argument("--image", required=True, help="Path to input image")
    parser.add_argument("--k", type=int, required=True, help="Number of clusters")
    parser.add_argument("--output", required=True, help="Path of the rendered label image")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducibility")
    parser.add_argument(
        "--threshold",
        type=int,
        default=80,
        help="Pixels with R+G+B below this are left out of clustering; 0 clusters every pixel (default: 80)",
    )
    parser.add_argument("--max-iterations", type=int, default=1000, help="Iteration cap")
    parser.add_argument("--init", choices=["sample", "uniform"], default="sample")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    try:
        from src.clustering.kmeans import cluster_image_pixels
        from src.data.images import load_rgb_image, save_rgb_image
        from src.visualization.render import label_colors, render_label_image

        image = load_rgb_image(Path(args.image))

        label_matrix, result = cluster_image_pixels(
            image,
            args.k,
            threshold=args.threshold,
            init=args.init,
            max_iterations=args.max_iterations,
            random_state=args.seed,
        )

        colors = label_colors(args.k, rng=args.seed)
        rendered = render_label_image(label_matrix, colors)
        save_rgb_image(rendered, Path(args.output))

        print(f"\nK-means clustering finished after {result.n_iter} iterations ({result.state.value}).")
        print(f"Clustered image saved as {args.output}")

        return 0

    except Exception as e:
        logging.error(f"Pixel clustering failed: {e}", exc_info=True)
        return 1
