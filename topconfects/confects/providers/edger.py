# File: topconfects/confects/providers/edger.py
# Location: topconfects/topconfects/confects/providers/edger.py
"""
edgeR quasi-likelihood p-value provider via rpy2.

EdgeRQLProvider wraps the Bioconductor edgeR package through rpy2's robjects
interface. At magnitude 0 it runs ``glmQLFTest`` once and caches the table;
at every other magnitude the engine visits it runs ``glmTreat`` with
``lfc=mag``. glmTreat refits significance against a shifted null and is the
expensive path, so it is only ever called for magnitudes the search actually
reaches, and only the active features' p-values are returned.

All rpy2 imports are deferred to method bodies, never at module level,
because ``import rpy2.robjects`` initializes the R runtime immediately and
would break environments where R is not installed.

Thread safety
-------------
rpy2 is NOT thread-safe. EdgeRQLProvider enforces main-thread-only execution
via _assert_main_thread().

Version requirements (warnings emitted but not enforced)
---------------------------------------------------------
R >= 4.0        — Bioconductor 3.12+ releases of edgeR
edgeR >= 3.32   — glmTreat null="worst.case" / "interval" choices
rpy2 >= 3.5.0   — stable numpy <-> R vector conversion
"""

from __future__ import annotations

import gc
import logging
import os
import threading
import time
from typing import Any, Sequence

import numpy as np
import pandas as pd
from packaging.version import InvalidVersion, Version

from topconfects.confects.base import ConfectsConfig, ConfectsResult, PValueProvider
from topconfects.confects.engine import ConfectsEngine
from topconfects.errors import DependencyMissingError, InvalidArgumentError

logger = logging.getLogger("topconfects")

VALID_NULLS = ("worst.case", "interval")

# Minimum recommended versions (warnings only, not hard requirements)
_MIN_R_VERSION = "4.0"
_MIN_EDGER_VERSION = "3.32"
_MIN_RPY2_VERSION = "3.5.0"

# glmQLFTest at lfc 0, glmTreat otherwise; topTags in input order
_TOP_TAGS_R = """
function(fit, coef, contrast, lfc, null) {
    if (lfc == 0) {
        tested <- if (is.null(contrast)) {
            edgeR::glmQLFTest(fit, coef=coef)
        } else {
            edgeR::glmQLFTest(fit, contrast=contrast)
        }
    } else {
        tested <- if (is.null(contrast)) {
            edgeR::glmTreat(fit, coef=coef, lfc=lfc, null=null)
        } else {
            edgeR::glmTreat(fit, contrast=contrast, lfc=lfc, null=null)
        }
    }
    tab <- edgeR::topTags(tested, n=nrow(fit), sort.by="none")$table
    list(names=rownames(tab), logFC=tab$logFC, logCPM=tab$logCPM, PValue=tab$PValue)
}
"""


def _version_lt(version_str: str, minimum: str) -> bool:
    """
    Return True if version_str is strictly less than minimum.

    Unparseable version strings never compare as older, so they produce no
    warning.

    Parameters
    ----------
    version_str : str
        Detected version (e.g. "3.40.0").
    minimum : str
        Minimum version to compare against (e.g. "3.32").

    Returns
    -------
    bool
    """
    try:
        return Version(version_str) < Version(minimum)
    except InvalidVersion:
        logger.debug(f"Cannot compare version {version_str!r} against {minimum!r}")
        return False


class EdgeRQLProvider(PValueProvider):
    """
    P-values from an edgeR quasi-likelihood fit.

    Lifecycle
    ---------
    1. Instantiate EdgeRQLProvider(fit, coef=... or contrast=...)
    2. Call detect_environment() — raises DependencyMissingError if rpy2 or
       edgeR is unavailable
    3. Call log_environment() — emits INFO version line + version warnings
    4. Call check_fit() — verifies the fit is a DGEGLM object
    5. Hand the provider to ConfectsEngine; it calls evaluate() per step
    6. finalize() (called by the engine) releases R memory

    Parameters
    ----------
    fit : rpy2 R object
        An edgeR ``DGEGLM`` object produced by ``glmQLFit``.
    coef : int or str, optional
        Coefficient to test. An int is a 0-based column index of the design
        matrix; a str is a column name. Use either coef or contrast.
    contrast : sequence of float, optional
        Contrast to test, one weight per coefficient.
    null : str
        Passed through to glmTreat: "worst.case" (default) or "interval".

    Raises
    ------
    InvalidArgumentError
        If both or neither of coef and contrast are given, or null is not
        one of the recognised values.
    """

    def __init__(
        self,
        fit: Any,
        coef: int | str | None = None,
        contrast: Sequence[float] | None = None,
        null: str = "worst.case",
    ) -> None:
        if (coef is None) == (contrast is None):
            raise InvalidArgumentError(
                "Exactly one of coef or contrast must be given", "coef/contrast"
            )
        if null not in VALID_NULLS:
            raise InvalidArgumentError(
                f"null must be one of {', '.join(VALID_NULLS)}, got {null!r}", "null"
            )

        self._fit = fit
        self.coef = coef
        self.contrast = None if contrast is None else [float(c) for c in contrast]
        self.null = null

        # Magnitude-0 glmQLFTest table, computed on first use and kept for the
        # lifetime of this provider
        self._top_table: pd.DataFrame | None = None

        # Version strings (set by detect_environment)
        self._rpy2_version: str = "<unknown>"
        self._r_version: str = "<unknown>"
        self._edger_version: str = "<unknown>"
        self._r_home: str = "<not set>"

        # Cached R gc() function (set by detect_environment, used by finalize)
        self._r_gc_func: Any = None

        # Compiled R closure for _TOP_TAGS_R, created on first use
        self._r_top_tags: Any = None

        self._treat_calls: int = 0
        self._start_time: float = time.time()

    @property
    def fit(self) -> Any:
        return self._fit

    def _assert_main_thread(self) -> None:
        """
        Raise RuntimeError if called from a non-main thread.

        Calling R from a worker thread causes segfaults with no Python
        traceback; this guard makes the failure explicit.
        """
        if threading.current_thread() is not threading.main_thread():
            raise RuntimeError(
                "EdgeRQLProvider called from a non-main thread. rpy2/R is not thread-safe "
                "and must only be used from the main thread."
            )

    def detect_environment(self) -> None:
        """
        Verify that rpy2 is importable and the R edgeR package is installed.

        Raises
        ------
        DependencyMissingError
            If rpy2 cannot be imported (R not installed or R_HOME
            misconfigured) or if edgeR is not installed in R.
        """
        self._assert_main_thread()

        r_home = os.environ.get("R_HOME", "<not set>")
        self._r_home = r_home

        try:
            import rpy2.robjects as ro
            import rpy2.robjects.packages as rpacks
        except Exception as exc:
            raise DependencyMissingError(
                "rpy2",
                f"rpy2 import failed: edger_confects requires R and rpy2.\n"
                f"  R_HOME: {r_home}\n"
                f"\n"
                f"To fix:\n"
                f"  1. Install R from https://www.r-project.org/ (>= 4.0 recommended)\n"
                f"  2. Set R_HOME to point to your R installation, e.g.:\n"
                f"       export R_HOME=$(R RHOME)\n"
                f"  3. Install rpy2: pip install 'topconfects[r]'\n"
                f"\n"
                f"Original error: {type(exc).__name__}: {exc}",
            ) from exc

        if not rpacks.isinstalled("edgeR"):
            raise DependencyMissingError(
                "edgeR",
                "edger_confects requires installing the Bioconductor package 'edgeR'.\n"
                "Install with, in R:\n"
                "  BiocManager::install('edgeR')",
            )

        import rpy2

        self._rpy2_version = str(rpy2.__version__)

        try:
            self._r_version = (
                str(ro.r("R.version$major")[0]) + "." + str(ro.r("R.version$minor")[0])
            )
        except Exception:
            self._r_version = "<unknown>"

        try:
            self._edger_version = str(ro.r("as.character(packageVersion('edgeR'))")[0])
        except Exception:
            self._edger_version = "<unknown>"

        self._r_gc_func = ro.r["gc"]

    def log_environment(self) -> None:
        """Log R environment info at INFO level; warn if versions below recommended."""
        logger.info(
            f"edgeR provider: rpy2={self._rpy2_version}, "
            f"R={self._r_version}, "
            f"edgeR={self._edger_version}, "
            f"R_HOME={self._r_home}"
        )

        if self._r_version != "<unknown>" and _version_lt(self._r_version, _MIN_R_VERSION):
            logger.warning(
                f"R version {self._r_version} is older than recommended. "
                f"Recommend R >= {_MIN_R_VERSION}."
            )

        if self._edger_version != "<unknown>" and _version_lt(
            self._edger_version, _MIN_EDGER_VERSION
        ):
            logger.warning(
                f"edgeR version {self._edger_version} may not support glmTreat null="
                f"'{self.null}'. Recommend edgeR >= {_MIN_EDGER_VERSION}."
            )

        if self._rpy2_version != "<unknown>" and _version_lt(self._rpy2_version, _MIN_RPY2_VERSION):
            logger.warning(
                f"rpy2 version {self._rpy2_version} may have unstable numpy <-> R "
                f"vector conversion. Recommend rpy2 >= {_MIN_RPY2_VERSION}."
            )

    def check_fit(self) -> None:
        """
        Require the fit to be an edgeR DGEGLM object.

        Raises
        ------
        InvalidArgumentError
            If the fit is not an R object or its class does not include
            "DGEGLM".
        """
        rclass = getattr(self._fit, "rclass", None)
        if rclass is None or "DGEGLM" not in [str(c) for c in rclass]:
            shown = "not an R object" if rclass is None else f"class {list(rclass)}"
            raise InvalidArgumentError(
                f"fit must be an edgeR DGEGLM object from glmQLFit, got {shown}", "fit"
            )

    def top_table(self) -> pd.DataFrame:
        """
        The magnitude-0 glmQLFTest table (unsorted, one row per feature).

        Computed on first call and cached for the lifetime of the provider.
        Columns include logFC, logCPM and PValue; the index holds row names.
        """
        if self._top_table is None:
            self._top_table = self._run_top_tags(0.0)
            logger.debug(f"glmQLFTest: {len(self._top_table)} features tested")
        return self._top_table

    @property
    def n_features(self) -> int:
        return len(self.top_table())

    def evaluate(self, indices: np.ndarray, mag: float) -> np.ndarray:
        self._assert_main_thread()
        idx = np.asarray(indices, dtype=int)

        if mag == 0.0:
            table = self.top_table()
        else:
            table = self._run_top_tags(mag)
            self._treat_calls += 1
            logger.debug(f"glmTreat(lfc={mag:g}, null={self.null}) for {len(idx)} features")

        return table["PValue"].to_numpy(dtype=float)[idx]

    def max_magnitude(self) -> float | None:
        # glmTreat p-values are at least ~0.5 once lfc reaches |logFC|.
        abs_lfc = np.abs(self.top_table()["logFC"].to_numpy(dtype=float))
        finite = abs_lfc[np.isfinite(abs_lfc)]
        return float(finite.max()) if len(finite) else None

    def feature_bounds(self) -> np.ndarray:
        return np.abs(self.top_table()["logFC"].to_numpy(dtype=float))

    def _run_top_tags(self, mag: float) -> pd.DataFrame:
        """
        Run glmQLFTest (mag == 0) or glmTreat (mag > 0) and return topTags.

        Arguments are passed to an R closure rather than through globalenv,
        so nothing is left behind in the R session. R exceptions propagate;
        the engine wraps them in ProviderError.
        """
        self._assert_main_thread()

        import rpy2.robjects as ro

        if self._r_top_tags is None:
            self._r_top_tags = ro.r(_TOP_TAGS_R)

        coef: Any = ro.NULL
        contrast: Any = ro.NULL
        if self.contrast is not None:
            contrast = ro.FloatVector(self.contrast)
        elif isinstance(self.coef, str):
            coef = ro.StrVector([self.coef])
        else:
            # R coefficients are 1-based
            coef = ro.IntVector([int(self.coef) + 1])

        outer = self._r_top_tags(
            self._fit, coef, contrast, ro.FloatVector([float(mag)]), ro.StrVector([self.null])
        )

        return pd.DataFrame(
            {
                "logFC": np.asarray(list(outer.rx2("logFC")), dtype=float),
                "logCPM": np.asarray(list(outer.rx2("logCPM")), dtype=float),
                "PValue": np.asarray(list(outer.rx2("PValue")), dtype=float),
            },
            index=[str(name) for name in outer.rx2("names")],
        )

    def annotation(self) -> pd.DataFrame | None:
        """
        The fit's ``genes`` annotation data frame, or None if it has none.

        Rows are in feature order; the index is reset to 0..n-1.
        """
        self._assert_main_thread()

        import rpy2.robjects as ro
        from rpy2.robjects import pandas2ri
        from rpy2.robjects.conversion import localconverter

        genes = ro.r("function(fit) if (is.null(fit$genes)) NULL else as.data.frame(fit$genes)")(
            self._fit
        )
        if ro.r["is.null"](genes)[0]:
            return None

        with localconverter(ro.default_converter + pandas2ri.converter):
            genes_df = ro.conversion.rpy2py(genes)
        return pd.DataFrame(genes_df).reset_index(drop=True)

    def finalize(self) -> None:
        """
        Release R-side memory and trigger Python garbage collection.

        Logs the number of glmTreat refits and elapsed time. Safe to call even
        if detect_environment() was never called.
        """
        elapsed = time.time() - self._start_time
        logger.info(
            f"EdgeRQLProvider: {self._treat_calls} glmTreat refits in {elapsed:.1f}s"
        )
        try:
            if self._r_gc_func is not None:
                self._r_gc_func()
        except Exception as exc:
            logger.debug(f"EdgeRQLProvider.finalize: R gc() failed: {exc}")
        gc.collect()


def edger_confects(
    fit: Any,
    coef: int | str | None = None,
    contrast: Sequence[float] | None = None,
    fdr: float = 0.05,
    step: float = 0.01,
    null: str = "worst.case",
    full: bool = False,
    max_steps: int = 1_000_000,
) -> ConfectsResult:
    """
    Confident log2 fold change based on the edgeR quasi-likelihood method.

    For all possible absolute log2 fold changes (LFC), which genes have at
    least this fold change at a specified False Discovery Rate?

    Results are presented in a table such that for any given LFC, if the
    reader chooses the genes with abs(confect) at least this large they are
    assured that this set of genes has at least this LFC (with the specified
    FDR). The confect column may also be viewed as a confidence bound on the
    LFC of each gene, with a dynamic correction for multiple testing.

    Parameters
    ----------
    fit : rpy2 R object
        An edgeR DGEGLM object produced using ``glmQLFit``.
    coef : int or str, optional
        Coefficient to test (0-based index or column name). Use either coef
        or contrast.
    contrast : sequence of float, optional
        Contrast to test. Use either coef or contrast.
    fdr : float
        False Discovery Rate to control for.
    step : float
        Granularity of log2 fold changes to test.
    null : str
        "null" parameter passed through to glmTreat: "worst.case" (default)
        or "interval".
    full : bool
        Include ``fdr_zero``, the FDR-adjusted p-value that the LFC is
        non-zero.
    max_steps : int
        Hard cap on the number of glmTreat refits after magnitude 0.

    Returns
    -------
    ConfectsResult
        Table columns: rank, index, confect (signed like logFC), effect
        (logFC), logCPM, name, then any fit$genes annotation columns, and
        fdr_zero in full mode. ``extra["edger_fit"]`` holds the fit.

    Raises
    ------
    InvalidArgumentError
        For coef/contrast conflicts, an unknown null, or a non-DGEGLM fit.
    DependencyMissingError
        If rpy2 or edgeR is not installed.
    """
    provider = EdgeRQLProvider(fit, coef=coef, contrast=contrast, null=null)
    provider.detect_environment()
    provider.log_environment()
    provider.check_fit()

    engine = ConfectsEngine(ConfectsConfig(fdr=fdr, step=step, full=full, max_steps=max_steps))
    confects = engine.run(provider.n_features, provider, effect_desc="log2 fold change")

    top = provider.top_table()
    table = confects.table
    index = table["index"].to_numpy()
    log_fc = top["logFC"].to_numpy(dtype=float)[index]

    table["confect"] = np.sign(log_fc) * table["confect"]
    table["effect"] = log_fc
    table["logCPM"] = top["logCPM"].to_numpy(dtype=float)[index]
    table["name"] = top.index.to_numpy(dtype=object)[index]

    if full:
        table["fdr_zero"] = table.pop("fdr_zero")

    genes = provider.annotation()
    if genes is not None:
        genes = genes.iloc[index].reset_index(drop=True)
        genes = genes[[c for c in genes.columns if c not in table.columns]]
        confects.table = pd.concat([table.reset_index(drop=True), genes], axis=1)

    confects.extra["edger_fit"] = fit
    return confects
