from __future__ import annotations

import argparse
import sys

import torch

from synchmc.config import load_emission_config
from synchmc.emission import emit_synchrotron_photons
from synchmc.grid import make_uniform_shell_grid
from synchmc.transport import PHOTON_TYPE_CODES, PhotonPool


def main() -> None:
    ap = argparse.ArgumentParser(description="Emit synchrotron photons from a toy uniform polar grid")
    ap.add_argument("--config", default=None, help="Emission YAML (packaged defaults if omitted)")
    ap.add_argument("--n_r", type=int, default=16)
    ap.add_argument("--n_theta", type=int, default=8)
    ap.add_argument("--r_min", type=float, default=1e10)
    ap.add_argument("--r_max", type=float, default=2e10)
    ap.add_argument("--temp", type=float, default=1e7)
    ap.add_argument("--dens", type=float, default=1e-10)
    ap.add_argument("--v_r", type=float, default=0.5)
    ap.add_argument("--r_inj", type=float, default=1.5e10)
    ap.add_argument("--fps", type=float, default=10.0)
    ap.add_argument("--frames", type=int, default=3, help="Number of consecutive frames to emit")
    ap.add_argument("--ph_weight", type=float, default=1e46)
    ap.add_argument("--maximum_photons", type=int, default=100_000)
    ap.add_argument("--epsilon_b", type=float, default=1.0)
    ap.add_argument("--n_workers", type=int, default=None)
    ap.add_argument("--seed", type=int, default=123)
    ap.add_argument("--out", default="toy_synch_photons.pt")
    ap.add_argument("--verbose", action="store_true", help="Print emission diagnostics")
    args = ap.parse_args()

    cfg = load_emission_config(args.config)
    if args.n_workers is not None:
        cfg = cfg.with_overrides(n_workers=args.n_workers)

    grid = make_uniform_shell_grid(
        n_r=args.n_r,
        n_theta=args.n_theta,
        r_range_cm=(args.r_min, args.r_max),
        temp_K=args.temp,
        dens_g_cm3=args.dens,
        v_r=args.v_r,
    )

    g = torch.Generator(device="cpu")
    g.manual_seed(args.seed)
    pool = PhotonPool.allocate(0)

    for frame in range(1, args.frames + 1):
        res = emit_synchrotron_photons(
            pool,
            grid,
            r_inj=args.r_inj,
            ph_weight=args.ph_weight,
            maximum_photons=args.maximum_photons,
            fps=args.fps,
            theta_min=0.0,
            theta_max=float(grid.theta.max()) + 1e-6,
            frame_scatt=frame,
            frame_inj=0,
            epsilon_b=args.epsilon_b,
            generator=g,
            config=cfg,
            diagnostics=sys.stdout if args.verbose else None,
        )
        print(
            f"frame {frame}: shell [{res.r_min:.4e}, {res.r_max:.4e}) cells={res.n_cells} "
            f"emitted={res.n_emitted} weight={res.weight:.4e} pool={res.num_photons}"
        )

    synch = pool.bufs["type"] == PHOTON_TYPE_CODES["synchrotron"]
    torch.save(pool.view(), args.out)
    print(f"Saved {args.out}; {int(synch.sum().item())} synchrotron photons in a pool of {pool.size}")


if __name__ == "__main__":
    main()
