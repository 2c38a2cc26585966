# terramarch/simplex_noise.py
"""
Симплекс-шум 2D и 4D
На основе алгоритма Стифана Густавсона (Stefan Gustavson)

4D шум собирается фабрикой из одного и того же исходного кода
для CPU (numba.jit) и для GPU (numba.cuda.jit(device=True)),
поэтому оба бэкенда поля плотности считают одну и ту же функцию.
"""

import numpy as np
from typing import Callable, Optional, Union
from numba import jit, prange

# ----------------------------------------------------------------------
# Константы для симплекс-шума
# ----------------------------------------------------------------------

# Градиенты для 2D шума (берутся первые две компоненты)
_GRAD3 = np.array([
    [1, 1, 0], [-1, 1, 0], [1, -1, 0], [-1, -1, 0],
    [1, 0, 1], [-1, 0, 1], [1, 0, -1], [-1, 0, -1],
    [0, 1, 1], [0, -1, 1], [0, 1, -1], [0, -1, -1]
], dtype=np.float64)

# Таблица перестановок (классическая из шума Перлина)
_PERM = np.array([
    151, 160, 137, 91, 90, 15, 131, 13, 201, 95, 96, 53, 194, 233, 7, 225, 140,
    36, 103, 30, 69, 142, 8, 99, 37, 240, 21, 10, 23, 190, 6, 148, 247, 120,
    234, 75, 0, 26, 197, 62, 94, 252, 219, 203, 117, 35, 11, 32, 57, 177, 33,
    88, 237, 149, 56, 87, 174, 20, 125, 136, 171, 168, 68, 175, 74, 165, 71,
    134, 139, 48, 27, 166, 77, 146, 158, 231, 83, 111, 229, 122, 60, 211, 133,
    230, 220, 105, 92, 41, 55, 46, 245, 40, 244, 102, 143, 54, 65, 25, 63, 161,
    1, 216, 80, 73, 209, 76, 132, 187, 208, 89, 18, 169, 200, 196, 135, 130,
    116, 188, 159, 86, 164, 100, 109, 198, 173, 186, 3, 64, 52, 217, 226, 250,
    124, 123, 5, 202, 38, 147, 118, 126, 255, 82, 85, 212, 207, 206, 59, 227,
    47, 16, 58, 17, 182, 189, 28, 42, 223, 183, 170, 213, 119, 248, 152, 2, 44,
    154, 163, 70, 221, 153, 101, 155, 167, 43, 172, 9, 129, 22, 39, 253, 19, 98,
    108, 110, 79, 113, 224, 232, 178, 185, 112, 104, 218, 246, 97, 228, 251, 34,
    242, 193, 238, 210, 144, 12, 191, 179, 162, 241, 81, 51, 145, 235, 249, 14,
    239, 107, 49, 192, 214, 31, 181, 199, 106, 157, 184, 84, 204, 176, 115, 121,
    50, 45, 127, 4, 150, 254, 138, 236, 205, 93, 222, 114, 67, 29, 24, 72, 243,
    141, 128, 195, 78, 66, 215, 61, 156, 180
], dtype=np.int32)

# Дублируем для быстрого доступа
_PERM_EXTENDED = np.concatenate([_PERM, _PERM])

# Коэффициенты для симплекс-шума
_F2 = 0.5 * (np.sqrt(3.0) - 1.0)
_G2 = (3.0 - np.sqrt(3.0)) / 6.0


def permutation_table(seed: Optional[int] = None) -> np.ndarray:
    """
    Таблица перестановок длиной 512 для заданного seed

    Args:
        seed: Семя генератора; None - классическая таблица Перлина

    Returns:
        Массив int32 из двух копий перестановки 0..255
    """
    if seed is None:
        return _PERM_EXTENDED.copy()
    perm = np.random.RandomState(seed).permutation(256).astype(np.int32)
    return np.concatenate([perm, perm])

# ----------------------------------------------------------------------
# Вспомогательные функции
# ----------------------------------------------------------------------

@jit(nopython=True, cache=True)
def _dot2(g: np.ndarray, x: float, y: float) -> float:
    """Скалярное произведение 2D градиента с вектором (x, y)"""
    return g[0] * x + g[1] * y

@jit(nopython=True, cache=True)
def _fast_floor(x: float) -> int:
    """Быстрое вычисление floor для положительных и отрицательных чисел"""
    xi = int(x)
    return xi if x >= xi else xi - 1

# ----------------------------------------------------------------------
# 2D симплекс-шум
# ----------------------------------------------------------------------

@jit(nopython=True, cache=True)
def simplex_noise_2d(x: float, y: float, perm: np.ndarray) -> float:
    """
    2D симплекс-шум

    Args:
        x, y: Координаты
        perm: Таблица перестановок (длиной 512)

    Returns:
        Значение шума в диапазоне примерно [-1, 1]
    """
    # Шаг 1: Скалярная сумма для определения симплекса
    s = (x + y) * _F2
    i = _fast_floor(x + s)
    j = _fast_floor(y + s)

    t = (i + j) * _G2
    x0 = x - (i - t)
    y0 = y - (j - t)

    # Шаг 2: Определяем, в каком треугольнике находимся (верхний или нижний)
    i1, j1 = (1, 0) if x0 > y0 else (0, 1)

    # Координаты внутри симплекса
    x1 = x0 - i1 + _G2
    y1 = y0 - j1 + _G2
    x2 = x0 - 1.0 + 2.0 * _G2
    y2 = y0 - 1.0 + 2.0 * _G2

    # Шаг 3: Хешируем углы симплекса
    ii = i & 255
    jj = j & 255

    gi0 = perm[ii + perm[jj]] % 12
    gi1 = perm[ii + i1 + perm[jj + j1]] % 12
    gi2 = perm[ii + 1 + perm[jj + 1]] % 12

    # Шаг 4: Вычисляем вклад от каждого угла
    t0 = 0.5 - x0 * x0 - y0 * y0
    n0 = 0.0
    if t0 > 0:
        t0 *= t0
        n0 = t0 * t0 * _dot2(_GRAD3[gi0], x0, y0)

    t1 = 0.5 - x1 * x1 - y1 * y1
    n1 = 0.0
    if t1 > 0:
        t1 *= t1
        n1 = t1 * t1 * _dot2(_GRAD3[gi1], x1, y1)

    t2 = 0.5 - x2 * x2 - y2 * y2
    n2 = 0.0
    if t2 > 0:
        t2 *= t2
        n2 = t2 * t2 * _dot2(_GRAD3[gi2], x2, y2)

    # Шаг 5: Возвращаем результат
    return 70.0 * (n0 + n1 + n2)

@jit(nopython=True, parallel=True, cache=True)
def simplex_noise_2d_array(x: np.ndarray, y: np.ndarray,
                           perm: np.ndarray) -> np.ndarray:
    """Векторизованная версия 2D симплекс-шума"""
    shape = x.shape
    result = np.zeros(shape, dtype=np.float32)

    for i in prange(shape[0]):
        for j in range(shape[1]):
            result[i, j] = simplex_noise_2d(x[i, j], y[i, j], perm)

    return result

# ----------------------------------------------------------------------
# 4D симплекс-шум (для анимированных полей: x, y, z + время)
# ----------------------------------------------------------------------

def build_simplex_4d(compile_fn: Callable) -> Callable:
    """
    Сборка 4D симплекс-шума под конкретную цель компиляции

    Градиенты выбираются хешем без таблицы, поэтому ядру нужна
    только таблица перестановок.

    Args:
        compile_fn: Декоратор компиляции, например jit(nopython=True)
                    или cuda.jit(device=True)

    Returns:
        Скомпилированная функция noise(x, y, z, w, perm)
    """
    F4 = (5.0 ** 0.5 - 1.0) / 4.0
    G4 = (5.0 - 5.0 ** 0.5) / 20.0

    @compile_fn
    def fast_floor(x):
        xi = int(x)
        return xi if x >= xi else xi - 1

    @compile_fn
    def grad4(hash_value, x, y, z, w):
        h = hash_value & 31
        u = x if h < 24 else y
        v = y if h < 16 else z
        s = z if h < 8 else w
        return ((-u if h & 1 else u)
                + (-v if h & 2 else v)
                + (-s if h & 4 else s))

    @compile_fn
    def corner(h, x, y, z, w):
        t = 0.6 - x * x - y * y - z * z - w * w
        if t <= 0.0:
            return 0.0
        t *= t
        return t * t * grad4(h, x, y, z, w)

    @compile_fn
    def simplex_noise_4d(x, y, z, w, perm):
        # Шаг 1: Скос пространства для определения ячейки симплекса
        s = (x + y + z + w) * F4
        i = fast_floor(x + s)
        j = fast_floor(y + s)
        k = fast_floor(z + s)
        l = fast_floor(w + s)

        t = (i + j + k + l) * G4
        x0 = x - (i - t)
        y0 = y - (j - t)
        z0 = z - (k - t)
        w0 = w - (l - t)

        # Шаг 2: Ранжирование координат выбирает один из 24 симплексов
        rank_x = 0
        rank_y = 0
        rank_z = 0
        rank_w = 0
        if x0 > y0:
            rank_x += 1
        else:
            rank_y += 1
        if x0 > z0:
            rank_x += 1
        else:
            rank_z += 1
        if x0 > w0:
            rank_x += 1
        else:
            rank_w += 1
        if y0 > z0:
            rank_y += 1
        else:
            rank_z += 1
        if y0 > w0:
            rank_y += 1
        else:
            rank_w += 1
        if z0 > w0:
            rank_z += 1
        else:
            rank_w += 1

        i1 = 1 if rank_x >= 3 else 0
        j1 = 1 if rank_y >= 3 else 0
        k1 = 1 if rank_z >= 3 else 0
        l1 = 1 if rank_w >= 3 else 0

        i2 = 1 if rank_x >= 2 else 0
        j2 = 1 if rank_y >= 2 else 0
        k2 = 1 if rank_z >= 2 else 0
        l2 = 1 if rank_w >= 2 else 0

        i3 = 1 if rank_x >= 1 else 0
        j3 = 1 if rank_y >= 1 else 0
        k3 = 1 if rank_z >= 1 else 0
        l3 = 1 if rank_w >= 1 else 0

        # Шаг 3: Хешируем углы симплекса
        ii = i & 255
        jj = j & 255
        kk = k & 255
        ll = l & 255

        h0 = perm[ii + perm[jj + perm[kk + perm[ll]]]]
        h1 = perm[ii + i1 + perm[jj + j1 + perm[kk + k1 + perm[ll + l1]]]]
        h2 = perm[ii + i2 + perm[jj + j2 + perm[kk + k2 + perm[ll + l2]]]]
        h3 = perm[ii + i3 + perm[jj + j3 + perm[kk + k3 + perm[ll + l3]]]]
        h4 = perm[ii + 1 + perm[jj + 1 + perm[kk + 1 + perm[ll + 1]]]]

        # Шаг 4: Вклад пяти углов
        n0 = corner(h0, x0, y0, z0, w0)
        n1 = corner(h1, x0 - i1 + G4, y0 - j1 + G4,
                    z0 - k1 + G4, w0 - l1 + G4)
        n2 = corner(h2, x0 - i2 + 2.0 * G4, y0 - j2 + 2.0 * G4,
                    z0 - k2 + 2.0 * G4, w0 - l2 + 2.0 * G4)
        n3 = corner(h3, x0 - i3 + 3.0 * G4, y0 - j3 + 3.0 * G4,
                    z0 - k3 + 3.0 * G4, w0 - l3 + 3.0 * G4)
        n4 = corner(h4, x0 - 1.0 + 4.0 * G4, y0 - 1.0 + 4.0 * G4,
                    z0 - 1.0 + 4.0 * G4, w0 - 1.0 + 4.0 * G4)

        # Шаг 5: Возвращаем результат
        return 27.0 * (n0 + n1 + n2 + n3 + n4)

    return simplex_noise_4d


# CPU-версия, общая для всего пакета
simplex_noise_4d = build_simplex_4d(jit(nopython=True))

# ----------------------------------------------------------------------
# Класс для удобной работы с симплекс-шумом
# ----------------------------------------------------------------------

class SimplexNoise:
    """Удобный интерфейс для работы с симплекс-шумом"""

    def __init__(self, seed: int = 42):
        """
        Инициализация генератора шума

        Args:
            seed: Семя для генерации таблицы перестановок
        """
        self.seed = seed
        self.perm_extended = permutation_table(seed)
        self.perm = self.perm_extended[:256]

    def noise_2d(self, x: Union[float, np.ndarray],
                 y: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """2D симплекс-шум"""
        if isinstance(x, np.ndarray) and isinstance(y, np.ndarray):
            x2 = np.atleast_2d(x).astype(np.float64)
            y2 = np.atleast_2d(y).astype(np.float64)
            return simplex_noise_2d_array(x2, y2, self.perm_extended).reshape(x.shape)
        return simplex_noise_2d(float(x), float(y), self.perm_extended)

    def noise_4d(self, x: float, y: float, z: float, w: float) -> float:
        """4D симплекс-шум"""
        return simplex_noise_4d(float(x), float(y), float(z), float(w),
                                self.perm_extended)

