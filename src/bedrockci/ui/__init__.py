"""Console surface: argparse command router and output rendering."""
