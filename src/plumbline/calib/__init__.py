"""
Distortion calibration from straight lines.

The camera model is fitted so that checkerboard rows, columns and diagonals become
straight again, without knowing the board geometry or its pose. The line fit yields a
mapping from observed to straightened pixels; it is then inverted by a second fit on
resampled point pairs.
"""
