"""Quaternion operations and utilities."""

import numpy as np
from numpy.typing import NDArray

from .types import Quaternion, EulerAngles


def quat_multiply(p: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Hamilton product of two [w, x, y, z] arrays."""
    pw, px, py, pz = p
    qw, qx, qy, qz = q
    return np.array([
        pw * qw - px * qx - py * qy - pz * qz,
        pw * qx + px * qw + py * qz - pz * qy,
        pw * qy - px * qz + py * qw + pz * qx,
        pw * qz + px * qy - py * qx + pz * qw,
    ], dtype=np.float64)


def quat_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Conjugate of a [w, x, y, z] array."""
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


class QuaternionOps:
    """Static methods for quaternion operations."""

    @staticmethod
    def from_rotation_matrix(R: NDArray[np.float64]) -> Quaternion:
        """Convert rotation matrix to quaternion.

        Uses Shepperd's method for numerical stability.

        Args:
            R: 3x3 rotation matrix.

        Returns:
            Unit quaternion representing the same rotation.
        """
        trace = np.trace(R)

        if trace > 0:
            s = 0.5 / np.sqrt(trace + 1.0)
            w = 0.25 / s
            x = (R[2, 1] - R[1, 2]) * s
            y = (R[0, 2] - R[2, 0]) * s
            z = (R[1, 0] - R[0, 1]) * s
        elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
            w = (R[2, 1] - R[1, 2]) / s
            x = 0.25 * s
            y = (R[0, 1] + R[1, 0]) / s
            z = (R[0, 2] + R[2, 0]) / s
        elif R[1, 1] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
            w = (R[0, 2] - R[2, 0]) / s
            x = (R[0, 1] + R[1, 0]) / s
            y = 0.25 * s
            z = (R[1, 2] + R[2, 1]) / s
        else:
            s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
            w = (R[1, 0] - R[0, 1]) / s
            x = (R[0, 2] + R[2, 0]) / s
            y = (R[1, 2] + R[2, 1]) / s
            z = 0.25 * s

        q = Quaternion(w=float(w), x=float(x), y=float(y), z=float(z))
        return q.normalized()

    @staticmethod
    def to_rotation_matrix(q: Quaternion) -> NDArray[np.float64]:
        """Rotation matrix taking sensor-frame vectors to the earth frame."""
        w, x, y, z = q.w, q.x, q.y, q.z
        return np.array([
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ], dtype=np.float64)

    @staticmethod
    def to_euler(q: Quaternion) -> EulerAngles:
        """Convert quaternion to Euler angles (ZYX convention).

        Args:
            q: Unit quaternion.

        Returns:
            Euler angles in radians.
        """
        w, x, y, z = q.w, q.x, q.y, q.z

        sinr_cosp = 2.0 * (w * x + y * z)
        cosr_cosp = 1.0 - 2.0 * (x * x + y * y)
        roll = np.arctan2(sinr_cosp, cosr_cosp)

        sinp = 2.0 * (w * y - z * x)
        if abs(sinp) >= 1:
            pitch = np.copysign(np.pi / 2, sinp)
        else:
            pitch = np.arcsin(sinp)

        siny_cosp = 2.0 * (w * z + x * y)
        cosy_cosp = 1.0 - 2.0 * (y * y + z * z)
        yaw = np.arctan2(siny_cosp, cosy_cosp)

        return EulerAngles(roll=float(roll), pitch=float(pitch), yaw=float(yaw))

    @staticmethod
    def from_axis_angle(axis: NDArray[np.float64], angle: float) -> Quaternion:
        """Quaternion for a rotation of ``angle`` radians about ``axis``."""
        axis = np.asarray(axis, dtype=np.float64)
        n = np.linalg.norm(axis)
        if n < 1e-12:
            return Quaternion.identity()
        axis = axis / n
        s = np.sin(angle / 2.0)
        return Quaternion(
            w=float(np.cos(angle / 2.0)),
            x=float(axis[0] * s),
            y=float(axis[1] * s),
            z=float(axis[2] * s),
        )

    @staticmethod
    def from_acc(acc: NDArray[np.float64]) -> Quaternion:
        """Tilt-only orientation from the accelerometer (yaw left at zero).

        Shortest-arc rotation taking the measured gravity reaction onto
        the earth z axis.
        """
        acc = np.asarray(acc, dtype=np.float64)
        acc_norm = np.linalg.norm(acc)
        if acc_norm < 1e-6:
            return Quaternion.identity()
        a = acc / acc_norm
        z = np.array([0.0, 0.0, 1.0])

        cos_angle = float(np.clip(np.dot(a, z), -1.0, 1.0))
        axis = np.cross(a, z)
        if np.linalg.norm(axis) < 1e-9:
            if cos_angle > 0:
                return Quaternion.identity()
            # Upside down: any horizontal axis works
            axis = np.array([1.0, 0.0, 0.0])
        return QuaternionOps.from_axis_angle(axis, float(np.arccos(cos_angle)))

    @staticmethod
    def from_acc_mag(acc: NDArray[np.float64], mag: NDArray[np.float64]) -> Quaternion:
        """Compute an initial orientation from accelerometer and magnetometer.

        Builds the earth axes in the sensor frame: z along the measured
        gravity reaction, x along the horizontal part of the magnetic
        field, y completing a right-handed frame. The result matches the
        equilibrium of the Madgwick filter for the same measurements.

        Args:
            acc: Accelerometer reading [ax, ay, az].
            mag: Magnetometer reading [mx, my, mz].

        Returns:
            Orientation quaternion, identity if the inputs are degenerate.
        """
        acc = np.asarray(acc, dtype=np.float64)
        mag = np.asarray(mag, dtype=np.float64)

        acc_norm = np.linalg.norm(acc)
        if acc_norm < 1e-6:
            return Quaternion.identity()
        z_axis = acc / acc_norm

        mag_norm = np.linalg.norm(mag)
        if mag_norm < 1e-6:
            return Quaternion.identity()
        mag_unit = mag / mag_norm

        mag_horizontal = mag_unit - np.dot(mag_unit, z_axis) * z_axis
        mag_h_norm = np.linalg.norm(mag_horizontal)
        if mag_h_norm < 1e-6:
            return Quaternion.identity()
        x_axis = mag_horizontal / mag_h_norm
        y_axis = np.cross(z_axis, x_axis)

        R = np.vstack([x_axis, y_axis, z_axis])
        return QuaternionOps.from_rotation_matrix(R)

    @staticmethod
    def multiply(q1: Quaternion, q2: Quaternion) -> Quaternion:
        """Multiply two quaternions (Hamilton product).

        Args:
            q1: First quaternion.
            q2: Second quaternion.

        Returns:
            Product quaternion q1 * q2.
        """
        return Quaternion.from_array(quat_multiply(q1.to_array(), q2.to_array()))

    @staticmethod
    def conjugate(q: Quaternion) -> Quaternion:
        """Compute quaternion conjugate.

        Args:
            q: Input quaternion.

        Returns:
            Conjugate quaternion.
        """
        return Quaternion(w=q.w, x=-q.x, y=-q.y, z=-q.z)

    @staticmethod
    def rotate_vector(q: Quaternion, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Rotate a sensor-frame vector into the earth frame (q v q*)."""
        qa = q.to_array()
        p = np.array([0.0, v[0], v[1], v[2]], dtype=np.float64)
        return quat_multiply(quat_multiply(qa, p), quat_conjugate(qa))[1:]

    @staticmethod
    def inverse_rotate_vector(q: Quaternion, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Rotate an earth-frame vector into the sensor frame (q* v q)."""
        qa = q.to_array()
        p = np.array([0.0, v[0], v[1], v[2]], dtype=np.float64)
        return quat_multiply(quat_multiply(quat_conjugate(qa), p), qa)[1:]

    @staticmethod
    def angle_between(q1: Quaternion, q2: Quaternion) -> float:
        """Compute rotation angle between two quaternions.

        Args:
            q1: First quaternion.
            q2: Second quaternion.

        Returns:
            Angle in radians.
        """
        q1_conj = QuaternionOps.conjugate(q1)
        q_diff = QuaternionOps.multiply(q2, q1_conj)
        angle = 2.0 * np.arccos(np.clip(abs(q_diff.w), -1.0, 1.0))
        return float(angle)
