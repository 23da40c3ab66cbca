"""vcf-pg-stats: cohort statistics and merged genotype rows for PostgreSQL variant stores."""

__version__ = "0.1.0"
