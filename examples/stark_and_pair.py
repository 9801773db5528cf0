#! /usr/bin/env python

import numpy as np

import rydpair as rd
from rydpair.states import StateOne


def stark_map(fields):
    one = rd.SystemOne("Rb")
    one.restrict_n(29, 31)
    one.restrict_l(0, 3)
    one.set_conserved_momenta_under_rotation([0.5])
    target = StateOne("Rb", 30, 0, 0.5, 0.5)
    energy = one.source.get_energy(target)

    shifts = []
    for field in fields:
        one.set_efield([0, 0, field])
        one.diagonalize()
        idx = one.get_basisvector_index(target)
        shifts.append(one.get_energies()[idx] - energy)
    return np.array(shifts)


def pair_potential(distances):
    one = rd.SystemOne("Rb")
    one.restrict_n(29, 31)
    one.restrict_l(0, 1)
    center = 2 * one.source.get_energy(StateOne("Rb", 30, 0, 0.5, 0.5))

    pair = rd.SystemTwo(one, one)
    pair.restrict_energy(center - 30, center + 30)
    pair.set_conserved_momenta_under_rotation([1])
    pair.set_conserved_parity_under_permutation(rd.Parity.EVEN)

    potentials = []
    for distance in distances:
        pair.set_distance(distance)
        energies = np.linalg.eigvalsh(pair.get_hamiltonian().toarray())
        potentials.append(energies[np.argmin(np.abs(energies - center))] - center)
    return np.array(potentials)


def main():
    fields = np.linspace(0, 2, 5)  # V/cm
    for field, shift in zip(fields, stark_map(fields)):
        print(f"E = {field:4.2f} V/cm: 30S shift {shift * 1e3:9.4f} MHz")

    distances = np.linspace(2, 6, 5)  # um
    for distance, shift in zip(distances, pair_potential(distances)):
        print(f"R = {distance:4.2f} um: 30S 30S shift {shift * 1e3:9.4f} MHz")


if __name__ == "__main__":
    main()
